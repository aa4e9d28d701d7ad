"""scheduling/snap.py — rounds drop positions to the snap granularity."""

from __future__ import annotations

import math
from dataclasses import dataclass

SNAP_MINUTES = 30


@dataclass(frozen=True)
class SnapPolicy:
    granularity: int = SNAP_MINUTES

    def snap(self, minutes: float) -> int:
        """
        Round to the nearest multiple of granularity, ties up.

        Python's round() is round-half-even, so floor(x + 0.5) is used.
        """
        return math.floor(minutes / self.granularity + 0.5) * self.granularity
