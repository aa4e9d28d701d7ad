"""
tests/unit/test_placement.py — PlacementEngine

Covers:
  - resolve_start(): padding, scroll, snapping, day overflow
  - lookup(): Found / NotFound
  - New placement: persisted range, unplaced → placed move, server record
    reconciled into the placed list
  - Reposition: only that task's range changes, placed count unchanged
  - Persistence failure on either path: collections untouched,
    error propagates, drag slot cleared
  - No-op drop without a drag; drag slot overwrite
  - Out-of-window drops are persisted but not drawn
  - Collections change only after the store confirms; a refresh landing
    mid-call is kept on failure and built upon on success
"""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from prodspace.exceptions import PersistenceError
from prodspace.models import Task
from prodspace.scheduling.interval import encode_span
from prodspace.scheduling.optimistic import OptimisticState
from prodspace.scheduling.placement import (
    DropKind,
    Found,
    NotFound,
    PlacementEngine,
    TaskCollections,
)
from prodspace.store.memory import InMemoryStore

DAY = date(2025, 7, 14)
CONTAINER_TOP = 100.0
SCROLL_TOP = 200.0


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _pointer_for(offset_px: float) -> float:
    """pointer_y that yields offset_px after padding, scroll and origin."""
    return offset_px + 270.0 + CONTAINER_TOP - SCROLL_TOP


def _unplaced(task_id: str = "u1", estimate=None, text: str = "Write report") -> Task:
    return Task(id=task_id, text=text, estimate=estimate)


def _placed(task_id: str, start: str, end: str, estimate=None) -> Task:
    return Task(
        id=task_id,
        text=f"task {task_id}",
        estimate=estimate,
        placed=True,
        assigned_time=f"[2025-07-14T{start}:00,2025-07-14T{end}:00)",
    )


def _make_engine(tasks, store=None, **store_kwargs):
    tasks = list(tasks)
    store = store or InMemoryStore(tasks, **store_kwargs)
    state = OptimisticState(TaskCollections.from_tasks(tasks), name="test")
    engine = PlacementEngine(store, state, today=lambda: DAY)
    return engine, state, store


async def _drop(engine: PlacementEngine, offset_px: float):
    return await engine.handle_drop(_pointer_for(offset_px), SCROLL_TOP, CONTAINER_TOP, DAY)


# ─────────────────────────────────────────────────────────────────────────────
# Resolution
# ─────────────────────────────────────────────────────────────────────────────

class TestResolveStart:

    def test_padding_scroll_and_origin(self):
        engine, _, _ = _make_engine([])
        # 485 px → 485 min after 06:00 → 14:05 → snapped 14:00
        start = engine.resolve_start(_pointer_for(485), SCROLL_TOP, CONTAINER_TOP, DAY)
        assert start == datetime(2025, 7, 14, 14, 0, 0)

    def test_tie_snaps_up(self):
        engine, _, _ = _make_engine([])
        start = engine.resolve_start(_pointer_for(495), SCROLL_TOP, CONTAINER_TOP, DAY)
        assert start == datetime(2025, 7, 14, 14, 30)

    def test_seconds_are_zero(self):
        engine, _, _ = _make_engine([])
        start = engine.resolve_start(_pointer_for(61.7), SCROLL_TOP, CONTAINER_TOP, DAY)
        assert start == datetime(2025, 7, 14, 7, 0, 0)
        assert start.second == 0 and start.microsecond == 0

    def test_minutes_past_midnight_roll_into_next_day(self):
        engine, _, _ = _make_engine([])
        start = engine.resolve_start(_pointer_for(1200), SCROLL_TOP, CONTAINER_TOP, DAY)
        assert start == datetime(2025, 7, 15, 2, 0)

    def test_reference_datetime_is_reduced_to_date(self):
        engine, _, _ = _make_engine([])
        start = engine.resolve_start(
            _pointer_for(0), SCROLL_TOP, CONTAINER_TOP, datetime(2025, 7, 14, 18, 45)
        )
        assert start == datetime(2025, 7, 14, 6, 0)


class TestLookup:

    def test_found_for_placed_task(self):
        placed = _placed("p1", "09:00", "09:30")
        engine, _, _ = _make_engine([placed, _unplaced()])
        assert engine.lookup("p1") == Found(placed)

    def test_not_found_for_unplaced_task(self):
        engine, _, _ = _make_engine([_unplaced("u1")])
        assert engine.lookup("u1") == NotFound("u1")


# ─────────────────────────────────────────────────────────────────────────────
# New placement
# ─────────────────────────────────────────────────────────────────────────────

class TestNewPlacement:

    @pytest.mark.asyncio
    async def test_places_task_at_snapped_time(self):
        task = _unplaced("u1", estimate=45)
        engine, state, store = _make_engine([task])
        engine.begin_drag(task)

        outcome = await _drop(engine, 485)   # 14:05

        expected = "[2025-07-14T14:00:00,2025-07-14T14:45:00)"
        assert outcome.kind == DropKind.PLACED
        assert outcome.start == datetime(2025, 7, 14, 14, 0)
        assert outcome.duration_minutes == 45
        assert store.get("u1").assigned_time == expected
        assert store.get("u1").placed is True
        assert state.value.unplaced == ()
        assert [t.id for t in state.value.placed] == ["u1"]
        assert state.value.placed[0].assigned_time == expected
        assert store.calls[-1] == ("create_assignment", ("u1", datetime(2025, 7, 14, 14, 0), 45))

    @pytest.mark.asyncio
    async def test_default_estimate_is_thirty_minutes(self):
        task = _unplaced("u1", estimate=None)
        engine, state, store = _make_engine([task])
        engine.begin_drag(task)

        await _drop(engine, 180)   # 09:00

        assert store.get("u1").assigned_time == "[2025-07-14T09:00:00,2025-07-14T09:30:00)"

    @pytest.mark.asyncio
    async def test_appends_after_existing_placed_tasks(self):
        existing = _placed("p1", "08:00", "08:30")
        task = _unplaced("u1")
        engine, state, _ = _make_engine([existing, task])
        engine.begin_drag(task)

        await _drop(engine, 60)

        assert [t.id for t in state.value.placed] == ["p1", "u1"]

    @pytest.mark.asyncio
    async def test_server_record_replaces_draft(self):
        task = _unplaced("u1", estimate=45)
        persisted = Task(
            id="u1",
            text="Write report (server)",
            estimate=45,
            placed=True,
            assigned_time='["2025-07-14 14:00:00","2025-07-14 14:45:00")',
        )
        store = MagicMock()
        store.create_assignment = AsyncMock(return_value=persisted)
        engine, state, _ = _make_engine([task], store=store)
        engine.begin_drag(task)

        outcome = await _drop(engine, 485)

        assert state.value.placed == (persisted,)
        assert outcome.task is persisted

    @pytest.mark.asyncio
    async def test_failure_leaves_collections_unchanged(self):
        task = _unplaced("u1", estimate=45)
        other = _placed("p1", "08:00", "08:30")
        engine, state, store = _make_engine([task, other], fail_on={"create_assignment"})
        before = state.value
        engine.begin_drag(task)

        with pytest.raises(PersistenceError):
            await _drop(engine, 485)

        assert state.value == before
        assert store.get("u1").placed is False
        assert engine.active_drag is None

    @pytest.mark.asyncio
    async def test_collections_change_only_after_store_confirms(self):
        task = _unplaced("u1", estimate=45)
        seen = {}
        store = MagicMock()

        async def create_assignment(task_id, start, duration):
            seen["placed"] = [t.id for t in state.value.placed]
            seen["unplaced"] = [t.id for t in state.value.unplaced]
            seen["displayed"] = [t.id for t in state.displayed.placed]
            return task.with_assignment(encode_span(start, duration))

        store.create_assignment = create_assignment
        engine, state, _ = _make_engine([task], store=store)
        engine.begin_drag(task)

        await _drop(engine, 485)

        assert seen == {"placed": [], "unplaced": ["u1"], "displayed": ["u1"]}
        assert [t.id for t in state.value.placed] == ["u1"]
        assert state.value.unplaced == ()

    @pytest.mark.asyncio
    async def test_refresh_during_failed_call_is_kept(self):
        task = _unplaced("u1", text="write")
        arrived = _unplaced("u2", text="added elsewhere")
        store = MagicMock()

        async def create_assignment(task_id, start, duration):
            state.set(TaskCollections(unplaced=(arrived, task)))
            raise PersistenceError("create_assignment", task_id)

        store.create_assignment = create_assignment
        engine, state, _ = _make_engine([task], store=store)
        engine.begin_drag(task)

        with pytest.raises(PersistenceError):
            await _drop(engine, 485)

        assert [t.text for t in state.value.unplaced] == ["added elsewhere", "write"]
        assert state.value.placed == ()
        assert state.displayed == state.value

    @pytest.mark.asyncio
    async def test_stale_refresh_during_successful_call_still_places(self):
        task = _unplaced("u1", estimate=45)
        store = MagicMock()

        async def create_assignment(task_id, start, duration):
            # refetch issued before the write reached the store
            state.set(TaskCollections(unplaced=(task,)))
            return task.with_assignment(encode_span(start, duration))

        store.create_assignment = create_assignment
        engine, state, _ = _make_engine([task], store=store)
        engine.begin_drag(task)

        await _drop(engine, 485)

        assert [t.id for t in state.value.placed] == ["u1"]
        assert state.value.unplaced == ()

    @pytest.mark.asyncio
    async def test_refresh_that_already_placed_task_is_not_duplicated(self):
        task = _unplaced("u1", estimate=45)
        other = _placed("p1", "16:00", "16:30")
        store = MagicMock()

        async def create_assignment(task_id, start, duration):
            persisted = task.with_assignment(encode_span(start, duration))
            state.set(TaskCollections(placed=(persisted, other)))
            return persisted

        store.create_assignment = create_assignment
        engine, state, _ = _make_engine([task, other], store=store)
        engine.begin_drag(task)

        await _drop(engine, 485)

        assert [t.id for t in state.value.placed] == ["u1", "p1"]


# ─────────────────────────────────────────────────────────────────────────────
# Reposition
# ─────────────────────────────────────────────────────────────────────────────

class TestReposition:

    @pytest.mark.asyncio
    async def test_updates_only_that_task(self):
        moved = _placed("p1", "09:00", "09:30")
        other = _placed("p2", "11:00", "12:00", estimate=60)
        engine, state, store = _make_engine([moved, other])
        engine.begin_drag(moved)

        outcome = await _drop(engine, 620)   # 16:20 → 16:30

        expected = "[2025-07-14T16:30:00,2025-07-14T17:00:00)"
        assert outcome.kind == DropKind.REPOSITIONED
        assert len(state.value.placed) == 2
        assert state.value.find_placed("p1").assigned_time == expected
        assert state.value.find_placed("p2") == other
        assert store.get("p1").assigned_time == expected
        assert store.calls[-1][0] == "update_assignment_time"

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_range(self):
        moved = _placed("p1", "09:00", "09:30")
        engine, state, _ = _make_engine([moved], fail_on={"update_assignment_time"})
        engine.begin_drag(moved)

        with pytest.raises(PersistenceError):
            await _drop(engine, 620)

        assert len(state.value.placed) == 1
        assert state.value.find_placed("p1").assigned_time == moved.assigned_time
        assert engine.active_drag is None

    @pytest.mark.asyncio
    async def test_range_unchanged_until_store_confirms(self):
        moved = _placed("p1", "09:00", "09:30")
        seen = {}
        store = MagicMock()

        async def update_assignment_time(task_id, start, duration):
            seen["confirmed"] = state.value.find_placed("p1").assigned_time
            seen["displayed"] = state.displayed.find_placed("p1").assigned_time

        store.update_assignment_time = update_assignment_time
        engine, state, _ = _make_engine([moved], store=store)
        engine.begin_drag(moved)

        await _drop(engine, 620)

        assert seen == {
            "confirmed": moved.assigned_time,
            "displayed": "[2025-07-14T16:30:00,2025-07-14T17:00:00)",
        }
        assert state.value.find_placed("p1").assigned_time == seen["displayed"]

    @pytest.mark.asyncio
    async def test_refresh_during_failed_reposition_is_kept(self):
        moved = _placed("p1", "09:00", "09:30")
        arrived = _placed("p2", "12:00", "12:30")
        store = MagicMock()

        async def update_assignment_time(task_id, start, duration):
            state.set(TaskCollections(placed=(moved, arrived)))
            raise PersistenceError("update_assignment_time", task_id)

        store.update_assignment_time = update_assignment_time
        engine, state, _ = _make_engine([moved], store=store)
        engine.begin_drag(moved)

        with pytest.raises(PersistenceError):
            await _drop(engine, 620)

        assert state.value.placed == (moved, arrived)

    @pytest.mark.asyncio
    async def test_reposition_never_calls_create(self):
        moved = _placed("p1", "09:00", "09:30")
        store = MagicMock()
        store.update_assignment_time = AsyncMock(return_value=None)
        store.create_assignment = AsyncMock()
        engine, _, _ = _make_engine([moved], store=store)
        engine.begin_drag(moved)

        await _drop(engine, 300)

        store.update_assignment_time.assert_awaited_once_with(
            "p1", datetime(2025, 7, 14, 11, 0), 30
        )
        store.create_assignment.assert_not_awaited()


# ─────────────────────────────────────────────────────────────────────────────
# Drag slot and edge cases
# ─────────────────────────────────────────────────────────────────────────────

class TestDragSlot:

    @pytest.mark.asyncio
    async def test_drop_without_drag_is_noop(self):
        engine, state, store = _make_engine([_unplaced()])
        before = state.value

        assert await _drop(engine, 485) is None
        assert store.calls == []
        assert state.value == before

    @pytest.mark.asyncio
    async def test_new_drag_overwrites_previous(self):
        first = _unplaced("u1")
        second = _unplaced("u2")
        engine, state, _ = _make_engine([first, second])
        engine.begin_drag(first)
        engine.begin_drag(second)

        await _drop(engine, 120)

        assert [t.id for t in state.value.placed] == ["u2"]
        assert [t.id for t in state.value.unplaced] == ["u1"]

    @pytest.mark.asyncio
    async def test_slot_cleared_after_success(self):
        task = _unplaced()
        engine, _, _ = _make_engine([task])
        engine.begin_drag(task)
        await _drop(engine, 120)
        assert engine.active_drag is None

    @pytest.mark.asyncio
    async def test_drag_over_flag_reset_by_drop(self):
        task = _unplaced()
        engine, _, _ = _make_engine([task])
        engine.begin_drag(task)
        engine.drag_over()
        assert engine.is_drag_over is True
        await _drop(engine, 120)
        assert engine.is_drag_over is False

    def test_drag_leave(self):
        engine, _, _ = _make_engine([])
        engine.drag_over()
        engine.drag_leave()
        assert engine.is_drag_over is False

    @pytest.mark.asyncio
    async def test_out_of_window_drop_is_persisted_but_hidden(self):
        task = _unplaced("u1")
        engine, state, store = _make_engine([task])
        engine.begin_drag(task)

        outcome = await _drop(engine, 1000)   # 22:40 → 22:30

        assert outcome.visible is False
        assert store.get("u1").assigned_time == "[2025-07-14T22:30:00,2025-07-14T23:00:00)"
        placed = state.value.find_placed("u1")
        assert placed is not None
        assert engine.geometry.position(placed) is None

    @pytest.mark.asyncio
    async def test_reference_date_defaults_to_today(self):
        task = _unplaced("u1")
        engine, _, store = _make_engine([task])
        engine.begin_drag(task)

        await engine.handle_drop(_pointer_for(0), SCROLL_TOP, CONTAINER_TOP)

        assert store.get("u1").assigned_time.startswith("[2025-07-14T06:00:00")
