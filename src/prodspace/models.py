"""
models.py — Task Data Contract

Task is an immutable snapshot of one row of the store's todos table.
Views never mutate a Task in place; they replace it with
dataclasses.replace(), so confirmed state and in-flight overlays never
share a changing object.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from prodspace.scheduling.interval import Interval, try_decode

DEFAULT_ESTIMATE_MINUTES = 30


class TaskStatus(str, Enum):
    PENDING   = "pending"
    COMPLETED = "completed"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Row timestamp as naive local wall-clock, like decoded ranges."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class Task:
    """
    One task as the scheduling engine sees it.

    id             Opaque, externally assigned.
    text           Display label.
    estimate       Duration in minutes, or None when never estimated.
    placed         True iff the task occupies a timeline slot.
    assigned_time  Persisted range string, present iff placed.
    """
    id: Any
    text: str = ""
    estimate: Optional[int] = None
    placed: bool = False
    assigned_time: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user_id: Optional[str] = field(default=None, compare=False)

    @property
    def estimate_minutes(self) -> int:
        """Estimate, defaulting to 30 minutes when unset or non-positive."""
        if self.estimate and self.estimate > 0:
            return self.estimate
        return DEFAULT_ESTIMATE_MINUTES

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def interval(self) -> Optional[Interval]:
        """Decoded assigned_time, or None when absent or undecodable."""
        return try_decode(self.assigned_time)

    def with_assignment(self, assigned_time: str) -> "Task":
        return replace(self, assigned_time=assigned_time, placed=True)

    # ── Row conversion ────────────────────────────────────────────────────────

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Task":
        estimate = row.get("estimate")
        return cls(
            id=row["id"],
            text=row.get("text") or "",
            estimate=int(estimate) if estimate not in (None, "") else None,
            placed=bool(row.get("placed", False)),
            assigned_time=row.get("assigned_time"),
            status=TaskStatus(row.get("status") or TaskStatus.PENDING.value),
            completed_at=_parse_timestamp(row.get("completed_at")),
            created_at=_parse_timestamp(row.get("created_at")),
            user_id=row.get("user_id"),
        )

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["status"] = self.status.value
        for key in ("completed_at", "created_at"):
            if row[key] is not None:
                row[key] = row[key].isoformat()
        return row
