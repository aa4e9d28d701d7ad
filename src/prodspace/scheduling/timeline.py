"""
scheduling/timeline.py — TimelineView

The view model behind "Today's Calendar". It owns:

  * the placed / unplaced collections (an OptimisticState shared with the
    PlacementEngine). `placed` and `unplaced` are store-confirmed;
    `displayed`, boxes() and hidden() also show a drop still in flight;
  * the fetch + realtime-subscription lifecycle that keeps them in step
    with the store;
  * the LiveClock that drives the now-indicator and auto-scroll;
  * the drag handlers the pointer-driven UI calls.

Lifecycle::

    view = TimelineView.from_settings(settings, store)
    await view.mount(container)     # load, subscribe, start the clock
    view.on_drag_start(task)
    await view.on_drop(pointer_y, scroll_top, container_top)
    await view.unmount()            # unsubscribe, stop the clock

Results of store calls that land after unmount() are dropped.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from prodspace.exceptions import StoreError
from prodspace.models import Task
from prodspace.observability.logger import bind_view, clear_view, get_logger
from prodspace.scheduling.clock import LiveClock, ScrollContainer
from prodspace.scheduling.geometry import Box, TimelineGeometry
from prodspace.scheduling.optimistic import OptimisticState
from prodspace.scheduling.placement import (
    DROP_PADDING,
    DropOutcome,
    PlacementEngine,
    TaskCollections,
)
from prodspace.scheduling.snap import SnapPolicy
from prodspace.store.base import SchedulerStore, Subscription

if TYPE_CHECKING:
    from prodspace.config.settings import Settings

log = get_logger(__name__)


class TimelineView:
    def __init__(
        self,
        store: SchedulerStore,
        *,
        geometry: Optional[TimelineGeometry] = None,
        snap: Optional[SnapPolicy] = None,
        drop_padding: float = DROP_PADDING,
        tick_seconds: float = 60.0,
        now: Callable[[], datetime] = datetime.now,
        clock: Optional[LiveClock] = None,
    ) -> None:
        self._store = store
        self._now = now
        self.geometry = geometry or TimelineGeometry()
        self.state: OptimisticState[TaskCollections] = OptimisticState(
            TaskCollections(), name="timeline"
        )
        self.engine = PlacementEngine(
            store,
            self.state,
            geometry=self.geometry,
            snap=snap,
            drop_padding=drop_padding,
            today=self.today,
        )
        self.clock = clock or LiveClock(self.geometry, now=now, period_s=tick_seconds)
        self.mounted = False
        self.last_error: Optional[Exception] = None
        self._subscription: Optional[Subscription] = None
        self._refreshes: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: "Settings", store: SchedulerStore, **kwargs: Any) -> "TimelineView":
        kwargs.setdefault("geometry", TimelineGeometry.from_settings(settings))
        kwargs.setdefault("snap", SnapPolicy(settings.timeline.snap_minutes))
        kwargs.setdefault("drop_padding", settings.timeline.drop_padding)
        kwargs.setdefault("tick_seconds", settings.clock.tick_seconds)
        return cls(store, **kwargs)

    def today(self) -> date:
        return self._now().date()

    # ── Collections ───────────────────────────────────────────────────────────

    @property
    def placed(self) -> tuple[Task, ...]:
        return self.state.value.placed

    @property
    def unplaced(self) -> tuple[Task, ...]:
        return self.state.value.unplaced

    @property
    def displayed(self) -> TaskCollections:
        """Confirmed collections with any drop still in flight applied."""
        return self.state.displayed

    async def load(self) -> bool:
        """
        Fetch all tasks, then today's placed tasks.

        Unplaced = every task not placed; placed = tasks overlapping today,
        in start order. On a store error the current collections are kept.
        """
        try:
            tasks = await self._store.fetch_tasks()
            placed_today = await self._store.fetch_assigned_for_day(self.today())
        except StoreError as e:
            self.last_error = e
            log.warning("timeline.load_failed", error=str(e), error_type=type(e).__name__)
            return False

        self.state.set(TaskCollections(
            placed=tuple(placed_today),
            unplaced=tuple(t for t in tasks if not t.placed),
        ))
        log.info("timeline.loaded", placed=len(placed_today), unplaced=len(self.unplaced))
        return True

    async def refresh(self) -> None:
        if not self.mounted:
            log.debug("timeline.refresh_skipped.unmounted")
            return
        await self.load()

    def _on_remote_change(self) -> None:
        if not self.mounted:
            return
        pending = asyncio.ensure_future(self.refresh())
        self._refreshes.add(pending)
        pending.add_done_callback(self._refreshes.discard)

    # ── Mount / unmount ───────────────────────────────────────────────────────

    async def mount(self, container: Optional[ScrollContainer] = None) -> None:
        if self.mounted:
            return
        self.mounted = True
        bind_view("timeline")
        await self.load()
        self._subscription = self._store.subscribe_to_changes(self._on_remote_change)
        if container is not None:
            self.clock.attach(container)
        await self.clock.start()
        log.info("timeline.mounted")

    async def unmount(self) -> None:
        if not self.mounted:
            return
        self.mounted = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.clock.stop()
        self.clock.detach()
        for pending in list(self._refreshes):
            pending.cancel()
        log.info("timeline.unmounted")
        clear_view()

    # ── Layout ────────────────────────────────────────────────────────────────

    def position(self, task: Task) -> Optional[Box]:
        return self.geometry.position(task)

    def boxes(self) -> list[tuple[Task, Box]]:
        """Placed tasks that are drawn, with their boxes, in render order."""
        drawn = []
        for task in self.displayed.placed:
            box = self.position(task)
            if box is not None:
                drawn.append((task, box))
        return drawn

    def hidden(self) -> list[Task]:
        """Placed tasks that cannot be drawn (off-window or undecodable)."""
        return [t for t in self.displayed.placed if self.position(t) is None]

    def current_offset(self) -> Optional[float]:
        return self.clock.current_offset()

    # ── Drag handlers ─────────────────────────────────────────────────────────

    def on_drag_start(self, task: Task) -> None:
        self.engine.begin_drag(task)

    def on_drag_over(self) -> None:
        self.engine.drag_over()

    def on_drag_leave(self) -> None:
        self.engine.drag_leave()

    @property
    def is_drag_over(self) -> bool:
        return self.engine.is_drag_over

    async def on_drop(
        self, pointer_y: float, scroll_top: float, container_top: float
    ) -> Optional[DropOutcome]:
        """
        Forward a drop to the engine. A PersistenceError is recorded in
        last_error for the UI to report, then re-raised.
        """
        try:
            return await self.engine.handle_drop(
                pointer_y, scroll_top, container_top, self.today()
            )
        except StoreError as e:
            self.last_error = e
            log.error("timeline.drop_failed", error=str(e), error_type=type(e).__name__)
            raise
