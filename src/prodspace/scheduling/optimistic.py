"""
scheduling/optimistic.py — Optimistic state updates

Every mutating operation on view state (place, reposition, add, toggle,
edit, delete) follows the same three phases:

    1. speculate  the expected change is registered as a pending overlay;
                  `displayed` shows it at once, `value` does not
    2. commit     the store call is awaited
    3. settle     on success the change is applied to the *current* value;
                  on failure the overlay is discarded and the error
                  propagates, leaving `value` untouched

`value` holds only store-confirmed state. A refresh that lands while a
call is in flight (set()) is therefore never overwritten by a stale
snapshot, and a successful change is applied on top of whatever the
refresh brought in.

Values held here must be immutable (tuples of frozen dataclasses).

Usage::

    state = OptimisticState((), name="tasks")
    await state.mutate(
        lambda tasks, created: (created,) + tasks,
        lambda: store.add_task(text, estimate),
        operation="add",
    )
"""

from __future__ import annotations

import itertools
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from prodspace.observability.logger import get_logger

log = get_logger(__name__)

S = TypeVar("S")
T = TypeVar("T")


class OptimisticState(Generic[S]):
    """Confirmed value plus the overlays of calls still in flight."""

    def __init__(self, value: S, name: str = "state") -> None:
        self._value = value
        self._name = name
        self._pending: dict[int, Callable[[S], S]] = {}
        self._tokens = itertools.count()

    @property
    def value(self) -> S:
        """Store-confirmed state."""
        return self._value

    @property
    def displayed(self) -> S:
        """Confirmed state with every in-flight speculation applied, in order."""
        shown = self._value
        for speculate in self._pending.values():
            shown = speculate(shown)
        return shown

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def set(self, value: S) -> None:
        """Replace the confirmed value outright, e.g. after a fresh fetch."""
        self._value = value

    async def mutate(
        self,
        apply: Callable[[S, T], S],
        commit: Callable[[], Awaitable[T]],
        speculate: Optional[Callable[[S], S]] = None,
        *,
        operation: str,
        **context,
    ) -> T:
        """
        Await commit(), then set value = apply(current value, result).

        speculate, when given, is shown through `displayed` until the call
        settles. The exception raised by commit() is re-raised unchanged and
        `value` is left exactly as it is at that moment.
        """
        token = next(self._tokens)
        if speculate is not None:
            self._pending[token] = speculate
            log.debug("optimistic.speculate", state=self._name, operation=operation, **context)

        try:
            result = await commit()
        except BaseException as exc:
            log.warning(
                "optimistic.rollback",
                state=self._name,
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
                **context,
            )
            raise
        finally:
            self._pending.pop(token, None)

        self._value = apply(self._value, result)
        log.debug("optimistic.commit", state=self._name, operation=operation, **context)
        return result
