"""
scheduling/geometry.py — Timeline geometry

Maps wall-clock time onto the vertical pixel axis of the day timeline and
back. The axis covers [start_hour:00, end_hour:00) at hour_height pixels
per hour; anything outside that window is "not visible" and maps to None,
never to a clamped offset.

Read path (render):  time_to_offset, duration_to_height, position
Write path (drop):   offset_to_minutes, offset_to_time — no bounds check,
                     snapping happens downstream
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from prodspace.config.settings import Settings
    from prodspace.models import Task

START_HOUR = 6
END_HOUR = 22
HOUR_HEIGHT = 60.0
MIN_BOX_HEIGHT = 32.0
TOP_PADDING = 1.0
DEFAULT_MINUTES = 30


@dataclass(frozen=True)
class Box:
    top: float
    height: float


@dataclass(frozen=True)
class TimelineGeometry:
    start_hour: int = START_HOUR
    end_hour: int = END_HOUR
    hour_height: float = HOUR_HEIGHT
    min_box_height: float = MIN_BOX_HEIGHT
    default_minutes: int = DEFAULT_MINUTES
    top_padding: float = TOP_PADDING

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TimelineGeometry":
        tl = settings.timeline
        return cls(
            start_hour=tl.start_hour,
            end_hour=tl.end_hour,
            hour_height=tl.hour_height,
            min_box_height=tl.min_box_height,
            default_minutes=tl.default_estimate_minutes,
            top_padding=tl.top_padding,
        )

    @property
    def window_start_minutes(self) -> int:
        return self.start_hour * 60

    @property
    def content_height(self) -> float:
        """Height of the rendered hour rows, the end_hour label row included."""
        return len(self.hours()) * self.hour_height + self.top_padding

    def is_visible(self, instant: datetime) -> bool:
        return self.start_hour <= instant.hour < self.end_hour

    # ── Read path ─────────────────────────────────────────────────────────────

    def time_to_offset(self, instant: datetime) -> Optional[float]:
        """Pixel offset of instant from the window start, or None if not visible."""
        if not self.is_visible(instant):
            return None
        minutes = (instant.hour - self.start_hour) * 60 + instant.minute
        return (minutes / 60) * self.hour_height

    def duration_to_height(self, minutes: Optional[float] = None) -> float:
        if not minutes or minutes <= 0:
            minutes = self.default_minutes
        return max((minutes / 60) * self.hour_height, self.min_box_height)

    def position(self, task: "Task") -> Optional[Box]:
        """
        Box for a placed task: top from its persisted start, height from its
        estimate. None when the range is undecodable or starts off-window.
        """
        interval = task.interval()
        if interval is None:
            return None
        offset = self.time_to_offset(interval.start)
        if offset is None:
            return None
        return Box(top=offset + self.top_padding, height=self.duration_to_height(task.estimate))

    # ── Write path ────────────────────────────────────────────────────────────

    def offset_to_minutes(self, pixels: float) -> float:
        """Relative minutes since the window start. Unrounded, unbounded."""
        return (pixels / self.hour_height) * 60

    def offset_to_time(self, pixels: float, reference_date: date) -> datetime:
        """Instant on reference_date for a pixel offset, rounded to the minute."""
        if isinstance(reference_date, datetime):
            reference_date = reference_date.date()
        minutes = round(self.offset_to_minutes(pixels))
        midnight = datetime.combine(reference_date, time())
        return midnight + timedelta(minutes=self.window_start_minutes + minutes)

    # ── Axis labels ───────────────────────────────────────────────────────────

    def hours(self) -> list[int]:
        return list(range(self.start_hour, self.end_hour + 1))


def format_hour(hour: int) -> str:
    if hour % 24 == 0:
        return "12 AM"
    if hour == 12:
        return "12 PM"
    if hour > 12:
        return f"{hour - 12} PM"
    return f"{hour} AM"
