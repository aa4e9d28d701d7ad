"""
store/memory.py — In-memory SchedulerStore

A process-local stand-in for the remote store, used by tests and by the
CLI when rendering a timeline from a YAML file. Behaves like the remote
table: ids are assigned here, ranges are written in the wire format, and
every mutation notifies subscribers.

Failure injection:
    store = InMemoryStore(fail_on={"create_assignment"})
    # every create_assignment call now raises PersistenceError
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional

from prodspace.exceptions import PersistenceError, TaskNotFoundError
from prodspace.models import Task, TaskStatus
from prodspace.observability.logger import get_logger
from prodspace.scheduling.interval import encode_span
from prodspace.store.base import ChangeCallback

log = get_logger(__name__)


class _Subscription:
    def __init__(self, store: "InMemoryStore", callback: ChangeCallback) -> None:
        self._store = store
        self._callback = callback

    def unsubscribe(self) -> None:
        self._store._subscribers.discard(self._callback)


class InMemoryStore:
    def __init__(
        self,
        tasks: Iterable[Task] = (),
        *,
        fail_on: Iterable[str] = (),
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._tasks: dict[Any, Task] = {t.id: t for t in tasks}
        self._subscribers: set[ChangeCallback] = set()
        self._pending: set[asyncio.Task] = set()
        self._now = now
        self.fail_on: set[str] = set(fail_on)
        self.calls: list[tuple[str, tuple]] = []

    @classmethod
    def from_rows(cls, rows: Iterable[dict[str, Any]], **kwargs: Any) -> "InMemoryStore":
        return cls((Task.from_row(row) for row in rows), **kwargs)

    def get(self, task_id: Any) -> Optional[Task]:
        return self._tasks.get(task_id)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if operation in self.fail_on:
            task_id = args[0] if args else None
            log.warning("store.memory.injected_failure", operation=operation, task_id=task_id)
            raise PersistenceError(operation, task_id)

    def _require(self, operation: str, task_id: Any) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(operation, task_id)
        return task

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            result = callback()
            if inspect.isawaitable(result):
                pending = asyncio.ensure_future(result)
                self._pending.add(pending)
                pending.add_done_callback(self._pending.discard)

    # ── Timeline ──────────────────────────────────────────────────────────────

    async def fetch_assigned_for_day(self, day: date) -> list[Task]:
        self._enter("fetch_assigned_for_day", day)
        day_start = datetime.combine(day, time())
        day_end = day_start + timedelta(days=1)
        found = []
        for task in self._tasks.values():
            interval = task.interval()
            if interval is None:
                continue
            if interval.start < day_end and interval.end > day_start:
                found.append((interval.start, task))
        found.sort(key=lambda pair: pair[0])
        return [task for _, task in found]

    async def create_assignment(self, task_id: Any, start: datetime, duration_minutes: int) -> Task:
        self._enter("create_assignment", task_id, start, duration_minutes)
        task = self._require("create_assignment", task_id)
        updated = task.with_assignment(encode_span(start, duration_minutes))
        self._tasks[task_id] = updated
        self._notify()
        return updated

    async def update_assignment_time(self, task_id: Any, start: datetime, duration_minutes: int) -> None:
        self._enter("update_assignment_time", task_id, start, duration_minutes)
        task = self._require("update_assignment_time", task_id)
        self._tasks[task_id] = replace(task, assigned_time=encode_span(start, duration_minutes))
        self._notify()

    async def remove_assignment(self, task_id: Any) -> None:
        self._enter("remove_assignment", task_id)
        task = self._require("remove_assignment", task_id)
        self._tasks[task_id] = replace(task, assigned_time=None, placed=False)
        self._notify()

    async def fetch_unscheduled(self) -> list[Task]:
        self._enter("fetch_unscheduled")
        return [
            t for t in self._tasks.values()
            if t.status == TaskStatus.PENDING and t.assigned_time is None
        ]

    # ── Task list ─────────────────────────────────────────────────────────────

    async def fetch_tasks(self) -> list[Task]:
        self._enter("fetch_tasks")
        tasks = list(self._tasks.values())
        tasks.sort(key=lambda t: t.created_at or datetime.min, reverse=True)
        return tasks

    async def add_task(self, text: str, estimate: Optional[int] = None) -> Task:
        self._enter("add_task", text, estimate)
        task = Task(
            id=uuid.uuid4().hex,
            text=text.strip(),
            estimate=int(estimate) if estimate else None,
            placed=False,
            created_at=self._now(),
        )
        self._tasks[task.id] = task
        self._notify()
        return task

    async def update_status(
        self, task_id: Any, status: TaskStatus, completed_at: Optional[datetime] = None
    ) -> None:
        self._enter("update_status", task_id, status, completed_at)
        task = self._require("update_status", task_id)
        self._tasks[task_id] = replace(task, status=status, completed_at=completed_at)
        self._notify()

    async def update_text(self, task_id: Any, text: str) -> None:
        self._enter("update_text", task_id, text)
        task = self._require("update_text", task_id)
        self._tasks[task_id] = replace(task, text=text)
        self._notify()

    async def delete_task(self, task_id: Any) -> None:
        self._enter("delete_task", task_id)
        self._require("delete_task", task_id)
        del self._tasks[task_id]
        self._notify()

    # ── Realtime ──────────────────────────────────────────────────────────────

    def subscribe_to_changes(self, callback: ChangeCallback) -> _Subscription:
        self._subscribers.add(callback)
        return _Subscription(self, callback)
