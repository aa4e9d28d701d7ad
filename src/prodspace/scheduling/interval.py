"""
scheduling/interval.py — Time-range codec

Parses and serializes the half-open interval stored in a task's
assigned_time column. Two textual shapes come back from the store:

    ["2025-07-14 16:00:00","2025-07-14 17:00:00")   range output, quoted
    [2025-07-14T16:00:00,2025-07-14T17:00:00)       what encode() writes

Both decode to the same (start, end) pair of naive local datetimes.

Decoding runs an ordered list of candidate parsers; the first one that
matches wins. Everything here is pure and stateless.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from prodspace.exceptions import IntervalError, InvalidInstantError, MalformedIntervalError
from prodspace.observability.logger import get_logger

log = get_logger(__name__)

_WIRE_FORMAT = "%Y-%m-%dT%H:%M:%S"


# ─────────────────────────────────────────────────────────────────────────────
# Interval
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Interval:
    """A half-open range [start, end) of local wall-clock time."""
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def contains_minute_of_day(self, minute_of_day: int) -> bool:
        """
        Compare on minutes since midnight only, ignoring the calendar date.

        This is how the focus view matches "now" against the day's tasks.
        """
        start = self.start.hour * 60 + self.start.minute
        end = self.end.hour * 60 + self.end.minute
        return start <= minute_of_day < end

    def encode(self) -> str:
        return encode(self.start, self.end)


# ─────────────────────────────────────────────────────────────────────────────
# Candidate parsers
# ─────────────────────────────────────────────────────────────────────────────

RangeParser = Callable[[str], Optional[tuple[str, str]]]


def _regex_parser(pattern: str) -> RangeParser:
    compiled = re.compile(pattern)

    def parse(raw: str) -> Optional[tuple[str, str]]:
        match = compiled.search(raw)
        if match is None:
            return None
        return match.group(1), match.group(2)

    parse.__name__ = f"parse_{pattern}"
    return parse


# Order matters: the quoted form must be tried first, since the unquoted
# pattern would otherwise capture the quotes as part of the timestamps.
CANDIDATE_PARSERS: tuple[RangeParser, ...] = (
    _regex_parser(r'\["([^"]+)","([^"]+)"\)'),
    _regex_parser(r"\[([^,]+),([^)]+)\)"),
)


def _parse_instant(raw: str, timestamp: str) -> datetime:
    cleaned = timestamp.strip()
    if "T" not in cleaned:
        cleaned = cleaned.replace(" ", "T", 1)
    try:
        instant = datetime.fromisoformat(cleaned)
    except ValueError as exc:
        raise InvalidInstantError(raw, timestamp) from exc
    if instant.tzinfo is not None:
        instant = instant.astimezone().replace(tzinfo=None)
    return instant


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def decode(raw: str) -> Interval:
    """
    Decode a persisted range string into an Interval.

    Raises:
        MalformedIntervalError: no candidate parser matched, or the decoded
                                range is empty (start >= end).
        InvalidInstantError:    a matched timestamp is not a valid instant.
    """
    pair: Optional[tuple[str, str]] = None
    for parser in CANDIDATE_PARSERS:
        pair = parser(raw)
        if pair is not None:
            break
    if pair is None:
        raise MalformedIntervalError(raw)

    start = _parse_instant(raw, pair[0])
    end = _parse_instant(raw, pair[1])
    if start >= end:
        raise MalformedIntervalError(raw, f"Empty time range (start >= end): {raw!r}")
    return Interval(start=start, end=end)


def try_decode(raw: Optional[str]) -> Optional[Interval]:
    """decode(), returning None instead of raising. Used by render paths."""
    if not raw:
        return None
    try:
        return decode(raw)
    except IntervalError as exc:
        log.debug("interval.decode.failed", raw=raw, error=str(exc), error_type=type(exc).__name__)
        return None


def encode(start: datetime, end: datetime) -> str:
    """
    Encode [start, end) in the unquoted, T-separated, second-precision form.

    Sub-second parts are truncated. Raises ValueError unless start < end
    after truncation.
    """
    start_s = start.replace(microsecond=0)
    end_s = end.replace(microsecond=0)
    if start_s >= end_s:
        raise ValueError(f"Interval start {start_s} must be before end {end_s}")
    return f"[{start_s.strftime(_WIRE_FORMAT)},{end_s.strftime(_WIRE_FORMAT)})"


def encode_span(start: datetime, minutes: int) -> str:
    """Encode [start, start + minutes)."""
    return encode(start, start + timedelta(minutes=minutes))
