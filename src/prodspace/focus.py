"""
focus.py — Focus view current-task lookup

The focus timer shows the task scheduled for "now". It scans today's
placed tasks and picks the first one whose range contains the current
minute of the day: start inclusive, end exclusive. The countdown itself
is not part of this package.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from prodspace.exceptions import StoreError
from prodspace.models import Task
from prodspace.observability.logger import get_logger
from prodspace.scheduling.clock import Ticker
from prodspace.store.base import SchedulerStore

if TYPE_CHECKING:
    from prodspace.config.settings import Settings

log = get_logger(__name__)


def find_current_task(tasks: Iterable[Task], now: datetime) -> Optional[Task]:
    minute_of_day = now.hour * 60 + now.minute
    for task in tasks:
        interval = task.interval()
        if interval is not None and interval.contains_minute_of_day(minute_of_day):
            return task
    return None


class FocusTracker:
    """Refreshes the current task from the store once a minute."""

    def __init__(
        self,
        store: SchedulerStore,
        now: Callable[[], datetime] = datetime.now,
        period_s: float = 60.0,
    ) -> None:
        self._store = store
        self._now = now
        self.current_task: Optional[Task] = None
        self._ticker = Ticker(period_s, self.refresh, name="focus")

    @classmethod
    def from_settings(cls, settings: "Settings", store: SchedulerStore, **kwargs: Any) -> "FocusTracker":
        kwargs.setdefault("period_s", settings.clock.focus_refresh_seconds)
        return cls(store, **kwargs)

    async def refresh(self) -> Optional[Task]:
        now = self._now()
        try:
            tasks = await self._store.fetch_assigned_for_day(now.date())
        except StoreError as e:
            # keep showing the last known task
            log.warning("focus.refresh_failed", error=str(e), error_type=type(e).__name__)
            return self.current_task
        self.current_task = find_current_task(tasks, now)
        log.debug(
            "focus.current_task",
            task_id=self.current_task.id if self.current_task else None,
        )
        return self.current_task

    def start(self) -> None:
        self._ticker.start()

    async def stop(self) -> None:
        await self._ticker.stop()
