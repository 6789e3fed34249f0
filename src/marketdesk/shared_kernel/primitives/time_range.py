from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .utc_timestamp import UtcTimestamp


@dataclass(frozen=True, slots=True)
class TimeRange:
    """
    TimeRange — a real-time window over a timeline.

    Semantics:
    - closed interval [start, end]: a visible window includes both edge bars.

    Invariants:
    - start <= end
    """

    start: UtcTimestamp
    end: UtcTimestamp

    def __post_init__(self) -> None:
        if self.start.value > self.end.value:
            raise ValueError(
                f"TimeRange requires start <= end, got start={self.start} end={self.end}"
            )

    def duration(self) -> timedelta:
        return self.end.value - self.start.value

    def contains(self, ts: UtcTimestamp) -> bool:
        return self.start.value <= ts.value <= self.end.value
