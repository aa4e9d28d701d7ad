"""
scheduling/ — the day-timeline scheduling engine.

The pure leaves are re-exported here. The stateful pieces import the task
model and are imported from their modules directly:

    from prodspace.scheduling.placement import PlacementEngine
    from prodspace.scheduling.timeline import TimelineView
"""

from prodspace.scheduling.geometry import Box, TimelineGeometry, format_hour
from prodspace.scheduling.interval import Interval, decode, encode, encode_span, try_decode
from prodspace.scheduling.snap import SnapPolicy

__all__ = [
    "Box",
    "Interval",
    "SnapPolicy",
    "TimelineGeometry",
    "decode",
    "encode",
    "encode_span",
    "format_hour",
    "try_decode",
]
