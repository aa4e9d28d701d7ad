"""prodspace — day-timeline scheduling engine for a personal productivity tool."""

__version__ = "0.1.0"
