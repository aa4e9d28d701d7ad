"""
tests/unit/test_board.py — TaskBoard and UnscheduledWatcher

Covers:
  - load(), newest first; store error keeps the list
  - add(): waits for the store id, prepends; empty text rejected
  - toggle / edit / remove: shown at once through displayed, kept in
    tasks only once the store confirms, unchanged on failure
  - remote change refreshes the list; unmount stops that
  - UnscheduledWatcher counts pending tasks without a range
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from prodspace.board import TaskBoard, UnscheduledWatcher
from prodspace.exceptions import PersistenceError
from prodspace.models import Task, TaskStatus
from prodspace.store.memory import InMemoryStore

NOW = datetime(2025, 7, 14, 9, 30)


def _tasks() -> list[Task]:
    return [
        Task(id="a", text="older", created_at=datetime(2025, 7, 1)),
        Task(id="b", text="newer", created_at=datetime(2025, 7, 10)),
    ]


async def _board(**store_kwargs) -> tuple[TaskBoard, InMemoryStore]:
    store = InMemoryStore(_tasks(), now=lambda: NOW, **store_kwargs)
    board = TaskBoard(store, now=lambda: NOW)
    await board.load()
    return board, store


class TestLoad:

    @pytest.mark.asyncio
    async def test_newest_first(self):
        board, _ = await _board()
        assert [t.id for t in board.tasks] == ["b", "a"]
        assert board.is_loading is False

    @pytest.mark.asyncio
    async def test_store_error_keeps_list(self):
        board, store = await _board()
        store.fail_on.add("fetch_tasks")
        await board.load()
        assert [t.id for t in board.tasks] == ["b", "a"]
        assert board.is_loading is False


class TestAdd:

    @pytest.mark.asyncio
    async def test_prepends_created_task(self):
        board, store = await _board()

        created = await board.add("  Write report ", 45)

        assert board.tasks[0] == created
        assert created.text == "Write report"
        assert store.get(created.id) == created

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self):
        board, store = await _board()
        with pytest.raises(ValueError):
            await board.add("   ")
        assert all(call[0] != "add_task" for call in store.calls)

    @pytest.mark.asyncio
    async def test_failure_leaves_list(self):
        board, _ = await _board(fail_on={"add_task"})
        before = board.tasks
        with pytest.raises(PersistenceError):
            await board.add("x")
        assert board.tasks == before


class TestToggle:

    @pytest.mark.asyncio
    async def test_complete_then_reopen(self):
        board, store = await _board()

        done = await board.toggle("a")
        assert done.status == TaskStatus.COMPLETED
        assert done.completed_at == NOW
        assert store.get("a").status == TaskStatus.COMPLETED

        reopened = await board.toggle("a")
        assert reopened.status == TaskStatus.PENDING
        assert reopened.completed_at is None

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self):
        board, _ = await _board(fail_on={"update_status"})
        with pytest.raises(PersistenceError):
            await board.toggle("a")
        assert board.get("a").status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_flip_displayed_before_store_answers(self):
        store = MagicMock()
        store.fetch_tasks = AsyncMock(return_value=_tasks())
        board = TaskBoard(store, now=lambda: NOW)
        await board.load()
        seen = []

        async def update_status(task_id, status, completed_at):
            shown = next(t for t in board.displayed if t.id == task_id)
            seen.append((shown.status, board.get(task_id).status))

        store.update_status = update_status
        await board.toggle("a")
        assert seen == [(TaskStatus.COMPLETED, TaskStatus.PENDING)]
        assert board.get("a").status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_id(self):
        board, store = await _board()
        assert await board.toggle("missing") is None


class TestEditAndRemove:

    @pytest.mark.asyncio
    async def test_edit(self):
        board, store = await _board()
        await board.edit("a", "renamed")
        assert board.get("a").text == "renamed"
        assert store.get("a").text == "renamed"

    @pytest.mark.asyncio
    async def test_edit_failure_rolls_back(self):
        board, _ = await _board(fail_on={"update_text"})
        with pytest.raises(PersistenceError):
            await board.edit("a", "renamed")
        assert board.get("a").text == "older"

    @pytest.mark.asyncio
    async def test_remove(self):
        board, store = await _board()
        assert await board.remove("a") is True
        assert board.get("a") is None
        assert store.get("a") is None

    @pytest.mark.asyncio
    async def test_remove_failure_keeps_position(self):
        board, _ = await _board(fail_on={"delete_task"})
        with pytest.raises(PersistenceError):
            await board.remove("b")
        assert [t.id for t in board.tasks] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_remove_unknown(self):
        board, _ = await _board()
        assert await board.remove("missing") is False


class TestSubscription:

    @pytest.mark.asyncio
    async def test_remote_change_reloads(self):
        store = InMemoryStore(_tasks(), now=lambda: NOW)
        board = TaskBoard(store, now=lambda: NOW)
        await board.mount()

        await store.add_task("from elsewhere")
        for _ in range(3):
            await asyncio.sleep(0)

        assert any(t.text == "from elsewhere" for t in board.tasks)
        board.unmount()

    @pytest.mark.asyncio
    async def test_unmount_stops_reloads(self):
        store = InMemoryStore(_tasks(), now=lambda: NOW)
        board = TaskBoard(store, now=lambda: NOW)
        await board.mount()
        board.unmount()

        await store.add_task("from elsewhere")
        for _ in range(3):
            await asyncio.sleep(0)

        assert len(board.tasks) == 2


class TestUnscheduledWatcher:

    @pytest.mark.asyncio
    async def test_counts_pending_without_range(self):
        store = InMemoryStore([
            Task(id="a"),
            Task(id="b", status=TaskStatus.COMPLETED),
            Task(id="c", placed=True, assigned_time="[2025-07-14T09:00:00,2025-07-14T09:30:00)"),
        ])
        watcher = UnscheduledWatcher(store)

        assert await watcher.check() is True
        assert watcher.unscheduled_count == 1

    @pytest.mark.asyncio
    async def test_nothing_pending(self):
        watcher = UnscheduledWatcher(InMemoryStore())
        assert await watcher.check() is False

    @pytest.mark.asyncio
    async def test_store_error_keeps_last_answer(self):
        store = InMemoryStore([Task(id="a")])
        watcher = UnscheduledWatcher(store)
        await watcher.check()
        store.fail_on.add("fetch_unscheduled")
        assert await watcher.check() is True

    @pytest.mark.asyncio
    async def test_start_checks_immediately(self):
        watcher = UnscheduledWatcher(InMemoryStore([Task(id="a")]), period_s=30)
        watcher.start()
        for _ in range(3):
            await asyncio.sleep(0)
        await watcher.stop()
        assert watcher.has_unscheduled is True
