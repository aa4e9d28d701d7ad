"""
scheduling/placement.py — PlacementEngine

Turns a drop on the timeline into a persisted range.

Per-task state machine:

    Unplaced ──drop──▶ Placed ──drop──▶ Placed

Drop resolution
---------------
    pointer_y - container_top + scroll_top - drop_padding   content offset (px)
      → geometry.offset_to_minutes                          relative minutes
      → snap.snap                                           30-minute grid
      → + start_hour * 60                                   minute of day
      → reference_date at that hour:minute, zero seconds    start instant

The dragged task is then looked up in the placed collection. The result is
a tagged union, Found | NotFound, consumed by a single _apply_placement():

    Found     reposition     store.update_assignment_time
    NotFound  new placement  store.create_assignment

Both go through OptimisticState.mutate. The confirmed collections change
only once the store call succeeds, and the change is applied to whatever
they hold at that moment, so a refresh that lands mid-call is kept. On
PersistenceError nothing is applied and the error reaches the caller.
There is no retry; the user can drag again.

A start outside the visible window is persisted as-is. The task becomes
placed but is not drawn, since geometry.position() returns None for it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

from prodspace.exceptions import PlacementError
from prodspace.models import Task
from prodspace.observability.logger import bind_drag, clear_drag, get_logger
from prodspace.scheduling.geometry import TimelineGeometry
from prodspace.scheduling.interval import encode_span
from prodspace.scheduling.optimistic import OptimisticState
from prodspace.scheduling.snap import SnapPolicy
from prodspace.store.base import SchedulerStore

if TYPE_CHECKING:
    from prodspace.config.settings import Settings

log = get_logger(__name__)

DROP_PADDING = 270.0


# ─────────────────────────────────────────────────────────────────────────────
# Collections
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskCollections:
    """The two disjoint, render-ordered task lists of the timeline."""
    placed: tuple[Task, ...] = ()
    unplaced: tuple[Task, ...] = ()

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "TaskCollections":
        tasks = tuple(tasks)
        return cls(
            placed=tuple(t for t in tasks if t.placed),
            unplaced=tuple(t for t in tasks if not t.placed),
        )

    def find_placed(self, task_id: Any) -> Optional[Task]:
        return next((t for t in self.placed if t.id == task_id), None)


# ─────────────────────────────────────────────────────────────────────────────
# Lookup result
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Found:
    task: Task


@dataclass(frozen=True)
class NotFound:
    task_id: Any


PlacedLookup = Union[Found, NotFound]


class DropKind(str, Enum):
    PLACED       = "placed"
    REPOSITIONED = "repositioned"


@dataclass(frozen=True)
class DropOutcome:
    kind: DropKind
    task: Task
    start: datetime
    duration_minutes: int
    visible: bool


# ─────────────────────────────────────────────────────────────────────────────
# PlacementEngine
# ─────────────────────────────────────────────────────────────────────────────

class PlacementEngine:
    """
    Drag/drop state machine over a shared OptimisticState[TaskCollections].

    One drag at a time: begin_drag() overwrites the slot, handle_drop()
    empties it when it finishes, whatever the outcome.
    """

    def __init__(
        self,
        store: SchedulerStore,
        state: OptimisticState[TaskCollections],
        geometry: Optional[TimelineGeometry] = None,
        snap: Optional[SnapPolicy] = None,
        drop_padding: float = DROP_PADDING,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._state = state
        self.geometry = geometry or TimelineGeometry()
        self.snap = snap or SnapPolicy()
        self.drop_padding = drop_padding
        self._today = today
        self._dragged: Optional[Task] = None
        self.is_drag_over = False

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        store: SchedulerStore,
        state: OptimisticState[TaskCollections],
        **kwargs: Any,
    ) -> "PlacementEngine":
        return cls(
            store=store,
            state=state,
            geometry=TimelineGeometry.from_settings(settings),
            snap=SnapPolicy(settings.timeline.snap_minutes),
            drop_padding=settings.timeline.drop_padding,
            **kwargs,
        )

    # ── Drag slot ─────────────────────────────────────────────────────────────

    @property
    def active_drag(self) -> Optional[Task]:
        return self._dragged

    def begin_drag(self, task: Task) -> None:
        if self._dragged is not None and self._dragged.id != task.id:
            log.debug("placement.drag.replaced", previous=self._dragged.id, task_id=task.id)
        self._dragged = task

    def drag_over(self) -> None:
        self.is_drag_over = True

    def drag_leave(self) -> None:
        self.is_drag_over = False

    # ── Resolution ────────────────────────────────────────────────────────────

    def resolve_start(
        self,
        pointer_y: float,
        scroll_top: float,
        container_top: float,
        reference_date: date,
    ) -> datetime:
        """Snapped start instant for a pointer position on reference_date."""
        if isinstance(reference_date, datetime):
            reference_date = reference_date.date()
        offset = pointer_y - container_top + scroll_top - self.drop_padding
        relative = self.geometry.offset_to_minutes(offset)
        snapped = self.snap.snap(relative)
        minute_of_day = self.geometry.window_start_minutes + snapped
        try:
            return datetime.combine(reference_date, time()) + timedelta(minutes=minute_of_day)
        except OverflowError as exc:
            raise PlacementError(f"Drop offset {offset}px is out of calendar range") from exc

    def lookup(self, task_id: Any) -> PlacedLookup:
        task = self._state.value.find_placed(task_id)
        return Found(task) if task is not None else NotFound(task_id)

    # ── Drop ──────────────────────────────────────────────────────────────────

    async def handle_drop(
        self,
        pointer_y: float,
        scroll_top: float,
        container_top: float,
        reference_date: Optional[date] = None,
    ) -> Optional[DropOutcome]:
        """
        Place or reposition the dragged task. No-op (None) without a drag.

        Raises:
            PersistenceError: the store rejected the call; the drop changes
                              nothing in the collections.
        """
        self.is_drag_over = False
        task = self._dragged
        if task is None:
            log.debug("placement.drop.no_drag")
            return None

        bind_drag(task.id)
        try:
            start = self.resolve_start(
                pointer_y, scroll_top, container_top, reference_date or self._today()
            )
            duration = task.estimate_minutes
            log.info(
                "placement.drop.start",
                task_id=task.id,
                pointer_y=pointer_y,
                scroll_top=scroll_top,
                container_top=container_top,
                start=start,
                duration_minutes=duration,
            )
            return await self._apply_placement(self.lookup(task.id), task, start, duration)
        finally:
            self._dragged = None
            clear_drag()

    async def _apply_placement(
        self,
        found: PlacedLookup,
        task: Task,
        start: datetime,
        duration: int,
    ) -> DropOutcome:
        assigned_time = encode_span(start, duration)
        visible = self.geometry.time_to_offset(start) is not None

        if isinstance(found, Found):
            def reposition(c: TaskCollections) -> TaskCollections:
                return replace(c, placed=tuple(
                    replace(t, assigned_time=assigned_time) if t.id == task.id else t
                    for t in c.placed
                ))

            await self._state.mutate(
                lambda c, _: reposition(c),
                lambda: self._store.update_assignment_time(task.id, start, duration),
                reposition,
                operation="reposition",
                task_id=task.id,
            )
            result = self._state.value.find_placed(task.id) or replace(
                found.task, assigned_time=assigned_time
            )
            kind = DropKind.REPOSITIONED
        else:
            draft = task.with_assignment(assigned_time)

            result = await self._state.mutate(
                lambda c, persisted: _moved_to_placed(c, persisted),
                lambda: self._store.create_assignment(task.id, start, duration),
                lambda c: _moved_to_placed(c, draft),
                operation="place",
                task_id=task.id,
            )
            kind = DropKind.PLACED

        log.info(
            f"placement.{kind.value}",
            task_id=task.id,
            assigned_time=result.assigned_time,
            visible=visible,
        )
        if not visible:
            log.info("placement.outside_window", task_id=task.id, start=start)
        return DropOutcome(
            kind=kind, task=result, start=start, duration_minutes=duration, visible=visible
        )


def _moved_to_placed(c: TaskCollections, task: Task) -> TaskCollections:
    """task out of unplaced and into placed, replacing any copy already there."""
    if c.find_placed(task.id) is not None:
        placed = tuple(task if t.id == task.id else t for t in c.placed)
    else:
        placed = c.placed + (task,)
    return TaskCollections(
        placed=placed,
        unplaced=tuple(t for t in c.unplaced if t.id != task.id),
    )
