"""
store/base.py — SchedulerStore port

The remote relational store is an external collaborator. The engine only
depends on this Protocol; implementations raise PersistenceError (or a
subclass) whenever the backend rejects a call, and never return an error
value in place of a result.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from prodspace.models import Task, TaskStatus

ChangeCallback = Callable[[], Any]


@runtime_checkable
class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


@runtime_checkable
class SchedulerStore(Protocol):
    """Async access to the todos table plus change notifications."""

    # ── Timeline ──────────────────────────────────────────────────────────────

    async def fetch_assigned_for_day(self, day: date) -> list[Task]:
        """Tasks whose range overlaps day, ordered by range start."""
        ...

    async def create_assignment(
        self, task_id: Any, start: datetime, duration_minutes: int
    ) -> Task:
        """Persist a first range for an unplaced task and mark it placed."""
        ...

    async def update_assignment_time(
        self, task_id: Any, start: datetime, duration_minutes: int
    ) -> None:
        """Persist a new range for an already-placed task."""
        ...

    async def remove_assignment(self, task_id: Any) -> None:
        """Clear a task's range and mark it unplaced."""
        ...

    async def fetch_unscheduled(self) -> list[Task]:
        """Pending tasks with no range."""
        ...

    # ── Task list ─────────────────────────────────────────────────────────────

    async def fetch_tasks(self) -> list[Task]:
        """All tasks, newest first."""
        ...

    async def add_task(self, text: str, estimate: Optional[int] = None) -> Task: ...

    async def update_status(
        self, task_id: Any, status: TaskStatus, completed_at: Optional[datetime] = None
    ) -> None: ...

    async def update_text(self, task_id: Any, text: str) -> None: ...

    async def delete_task(self, task_id: Any) -> None: ...

    # ── Realtime ──────────────────────────────────────────────────────────────

    def subscribe_to_changes(self, callback: ChangeCallback) -> Subscription:
        """Call callback after any remote mutation to the todos table."""
        ...
