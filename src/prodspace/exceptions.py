"""
exceptions.py — prodspace Unified Error Hierarchy

All prodspace-specific exceptions live here. Every layer of the engine
raises typed subclasses of ProdspaceError, never bare Exception.

Import from here, not from individual modules:
    from prodspace.exceptions import MalformedIntervalError, PersistenceError

Hierarchy:
    ProdspaceError
    ├── IntervalError
    │   ├── MalformedIntervalError
    │   └── InvalidInstantError
    ├── StoreError
    │   └── PersistenceError
    │       └── TaskNotFoundError
    └── PlacementError
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class ProdspaceError(Exception):
    """Base class for all prodspace exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Interval codec
# ─────────────────────────────────────────────────────────────────────────────

class IntervalError(ProdspaceError):
    """Base for errors decoding a persisted time range."""

    def __init__(self, raw: str, message: str = "") -> None:
        self.raw = raw
        super().__init__(message or f"Cannot decode time range: {raw!r}")


class MalformedIntervalError(IntervalError):
    """The raw string matches none of the supported bracket shapes."""


class InvalidInstantError(IntervalError):
    """A bracketed timestamp does not parse to a valid point in time."""

    def __init__(self, raw: str, timestamp: str, message: str = "") -> None:
        self.timestamp = timestamp
        super().__init__(
            raw, message or f"Invalid timestamp {timestamp!r} in time range {raw!r}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Store layer
# ─────────────────────────────────────────────────────────────────────────────

class StoreError(ProdspaceError):
    """Base for errors raised by a SchedulerStore implementation."""


class PersistenceError(StoreError):
    """The store rejected a create/update/delete call."""

    def __init__(self, operation: str, task_id: object = None, message: str = "") -> None:
        self.operation = operation
        self.task_id = task_id
        detail = f" for task {task_id!r}" if task_id is not None else ""
        super().__init__(message or f"Store rejected '{operation}'{detail}")


class TaskNotFoundError(PersistenceError):
    """The store has no task with the requested id."""

    def __init__(self, operation: str, task_id: object) -> None:
        super().__init__(operation, task_id, f"Task {task_id!r} not found during '{operation}'")


# ─────────────────────────────────────────────────────────────────────────────
# Placement layer
# ─────────────────────────────────────────────────────────────────────────────

class PlacementError(ProdspaceError):
    """A drop could not be resolved into a placement."""


__all__ = [
    "ProdspaceError",
    # Interval
    "IntervalError",
    "MalformedIntervalError",
    "InvalidInstantError",
    # Store
    "StoreError",
    "PersistenceError",
    "TaskNotFoundError",
    # Placement
    "PlacementError",
]
