"""
scheduling/clock.py — Ticker and LiveClock

Ticker runs a callback on a fixed period as an asyncio Task inside the
view's event loop. It is the only timer primitive in prodspace: the
now-indicator, the focus view's current-task refresh and the unscheduled
work poll are all Tickers.

  * Pure asyncio — no threads.
  * Fail-safe: a callback error is logged and the loop keeps going.
  * stop() cancels the loop and waits for it; views call it on unmount so
    no timer outlives its view.

LiveClock owns a Ticker with a 60 s period and keeps the "current instant"
used for the now-indicator. It is injectable (pass now=) and owned by the
view that draws it; there is no process-wide clock.

Usage::

    clock = LiveClock(geometry)
    clock.attach(scroll_container)
    await clock.start()     # ticks now, then every 60 s
    ...
    await clock.stop()
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from prodspace.observability.logger import get_logger
from prodspace.scheduling.geometry import TimelineGeometry

log = get_logger(__name__)

TickCallback = Callable[[], Union[Any, Awaitable[Any]]]


# ─────────────────────────────────────────────────────────────────────────────
# Ticker
# ─────────────────────────────────────────────────────────────────────────────

class Ticker:
    """Periodic callback runner. start() / stop() lifecycle, no backpressure."""

    def __init__(
        self,
        period_s: float,
        callback: TickCallback,
        *,
        name: str = "ticker",
        fire_immediately: bool = True,
    ) -> None:
        if period_s <= 0:
            raise ValueError("Ticker period must be > 0 seconds")
        self.period_s = period_s
        self.name = name
        self._callback = callback
        self._fire_immediately = fire_immediately
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop in the running event loop. Non-blocking."""
        if self.running:
            log.warning("ticker.already_running", ticker=self.name)
            return
        self._task = asyncio.create_task(self._loop(), name=f"ticker:{self.name}")
        log.debug("ticker.started", ticker=self.name, period_s=self.period_s)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        log.debug("ticker.stopped", ticker=self.name, ticks=self.ticks)

    async def fire(self) -> None:
        """Run the callback once. Errors are logged, never raised."""
        self.ticks += 1
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(
                "ticker.callback_error",
                ticker=self.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def _loop(self) -> None:
        try:
            if self._fire_immediately:
                await self.fire()
            while True:
                await asyncio.sleep(self.period_s)
                await self.fire()
        except asyncio.CancelledError:
            log.debug("ticker.cancelled", ticker=self.name)


# ─────────────────────────────────────────────────────────────────────────────
# LiveClock
# ─────────────────────────────────────────────────────────────────────────────

class ScrollContainer(Protocol):
    """The scrollable timeline element the now-indicator is centred in."""
    client_height: float

    def scroll_to(self, top: float) -> None: ...


class _ClockSubscription:
    def __init__(self, clock: "LiveClock", callback: Callable[[datetime], Any]) -> None:
        self._clock = clock
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._clock._subscribers:
            self._clock._subscribers.remove(self._callback)


class LiveClock:
    def __init__(
        self,
        geometry: TimelineGeometry,
        now: Callable[[], datetime] = datetime.now,
        period_s: float = 60.0,
    ) -> None:
        self.geometry = geometry
        self._now = now
        self._current = now()
        self._subscribers: list[Callable[[datetime], Any]] = []
        self._container: Optional[ScrollContainer] = None
        self._ticker = Ticker(period_s, self.tick, name="clock", fire_immediately=False)

    @property
    def current_instant(self) -> datetime:
        return self._current

    @property
    def running(self) -> bool:
        return self._ticker.running

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Tick once immediately (initial mount), then every period."""
        self.tick()
        self._ticker.start()

    async def stop(self) -> None:
        await self._ticker.stop()

    # ── Tick ──────────────────────────────────────────────────────────────────

    def tick(self) -> datetime:
        """Refresh the current instant, notify subscribers, scroll into view."""
        self._current = self._now()
        log.debug("clock.tick", now=self._current)
        for callback in list(self._subscribers):
            try:
                callback(self._current)
            except Exception as e:
                log.error(
                    "clock.subscriber_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
        self.scroll_into_view()
        return self._current

    def subscribe(self, callback: Callable[[datetime], Any]) -> _ClockSubscription:
        self._subscribers.append(callback)
        return _ClockSubscription(self, callback)

    # ── Now-indicator ─────────────────────────────────────────────────────────

    def current_offset(self) -> Optional[float]:
        return self.geometry.time_to_offset(self._current)

    def attach(self, container: ScrollContainer) -> None:
        self._container = container

    def detach(self) -> None:
        self._container = None

    def scroll_into_view(self) -> Optional[float]:
        """
        Centre the now-indicator in the attached container.

        Returns the requested scroll top, or None when skipped (no container,
        or now is outside the visible window).
        """
        offset = self.current_offset()
        if offset is None or self._container is None:
            return None
        top = max(0.0, offset - self._container.client_height / 2)
        self._container.scroll_to(top)
        return top
