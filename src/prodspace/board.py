"""
board.py — Task list view model

TaskBoard is the to-do list: newest task first, kept in step with the
store by a change subscription. Every mutation goes through the same
OptimisticState protocol as the timeline's placements: `tasks` changes only
once the store confirms, `displayed` shows the change while the call is in
flight, and a rejected call changes nothing and raises PersistenceError.

    add     nothing to show until the store assigns the id, then prepends
    toggle  flips pending/completed
    edit    replaces the text
    remove  drops the task

UnscheduledWatcher is the dashboard's 30-second poll answering "is there
pending work that is not on the timeline yet?".
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from prodspace.exceptions import StoreError
from prodspace.models import Task, TaskStatus
from prodspace.observability.logger import get_logger
from prodspace.scheduling.clock import Ticker
from prodspace.scheduling.optimistic import OptimisticState
from prodspace.store.base import SchedulerStore, Subscription

if TYPE_CHECKING:
    from prodspace.config.settings import Settings

log = get_logger(__name__)


class TaskBoard:
    def __init__(self, store: SchedulerStore, now: Callable[[], datetime] = datetime.now) -> None:
        self._store = store
        self._now = now
        self.state: OptimisticState[tuple[Task, ...]] = OptimisticState((), name="board")
        self.is_loading = False
        self._subscription: Optional[Subscription] = None
        self._refreshes: set[asyncio.Task] = set()

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self.state.value

    @property
    def displayed(self) -> tuple[Task, ...]:
        return self.state.displayed

    def get(self, task_id: Any) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def load(self) -> None:
        self.is_loading = True
        try:
            tasks = await self._store.fetch_tasks()
        except StoreError as e:
            log.warning("board.load_failed", error=str(e), error_type=type(e).__name__)
            return
        finally:
            self.is_loading = False
        self.state.set(tuple(tasks))

    async def mount(self) -> None:
        await self.load()
        self._subscription = self._store.subscribe_to_changes(self._on_remote_change)

    def _on_remote_change(self) -> None:
        pending = asyncio.ensure_future(self.load())
        self._refreshes.add(pending)
        pending.add_done_callback(self._refreshes.discard)

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for pending in list(self._refreshes):
            pending.cancel()

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def add(self, text: str, estimate: Optional[int] = None) -> Task:
        text = text.strip()
        if not text:
            raise ValueError("Task text must not be empty")
        return await self.state.mutate(
            lambda tasks, created: (created,) + tuple(t for t in tasks if t.id != created.id),
            lambda: self._store.add_task(text, estimate),
            operation="add",
        )

    async def toggle(self, task_id: Any) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        if task.status == TaskStatus.COMPLETED:
            status, completed_at = TaskStatus.PENDING, None
        else:
            status, completed_at = TaskStatus.COMPLETED, self._now()

        def flip(tasks: tuple[Task, ...]) -> tuple[Task, ...]:
            return _replace_where(tasks, task_id, status=status, completed_at=completed_at)

        await self.state.mutate(
            lambda tasks, _: flip(tasks),
            lambda: self._store.update_status(task_id, status, completed_at),
            flip,
            operation="toggle",
            task_id=task_id,
        )
        return self.get(task_id) or replace(task, status=status, completed_at=completed_at)

    async def edit(self, task_id: Any, text: str) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None

        def rename(tasks: tuple[Task, ...]) -> tuple[Task, ...]:
            return _replace_where(tasks, task_id, text=text)

        await self.state.mutate(
            lambda tasks, _: rename(tasks),
            lambda: self._store.update_text(task_id, text),
            rename,
            operation="edit",
            task_id=task_id,
        )
        return self.get(task_id) or replace(task, text=text)

    async def remove(self, task_id: Any) -> bool:
        if self.get(task_id) is None:
            return False

        def drop(tasks: tuple[Task, ...]) -> tuple[Task, ...]:
            return tuple(t for t in tasks if t.id != task_id)

        await self.state.mutate(
            lambda tasks, _: drop(tasks),
            lambda: self._store.delete_task(task_id),
            drop,
            operation="delete",
            task_id=task_id,
        )
        return True


def _replace_where(tasks: tuple[Task, ...], task_id: Any, **changes: Any) -> tuple[Task, ...]:
    return tuple(replace(t, **changes) if t.id == task_id else t for t in tasks)


class UnscheduledWatcher:
    """Polls for pending tasks with no range every 30 seconds."""

    def __init__(self, store: SchedulerStore, period_s: float = 30.0) -> None:
        self._store = store
        self.unscheduled_count = 0
        self._ticker = Ticker(period_s, self.check, name="unscheduled")

    @classmethod
    def from_settings(cls, settings: "Settings", store: SchedulerStore) -> "UnscheduledWatcher":
        return cls(store, period_s=settings.clock.unscheduled_poll_seconds)

    @property
    def has_unscheduled(self) -> bool:
        return self.unscheduled_count > 0

    async def check(self) -> bool:
        try:
            tasks = await self._store.fetch_unscheduled()
        except StoreError as e:
            log.warning("unscheduled.check_failed", error=str(e), error_type=type(e).__name__)
            return self.has_unscheduled
        self.unscheduled_count = len(tasks)
        log.debug("unscheduled.checked", count=self.unscheduled_count)
        return self.has_unscheduled

    def start(self) -> None:
        self._ticker.start()

    async def stop(self) -> None:
        await self._ticker.stop()
