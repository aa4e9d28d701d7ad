"""store/ — the SchedulerStore port and its in-memory implementation."""

from prodspace.store.base import SchedulerStore, Subscription
from prodspace.store.memory import InMemoryStore

__all__ = ["InMemoryStore", "SchedulerStore", "Subscription"]
