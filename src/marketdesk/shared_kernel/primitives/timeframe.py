from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .utc_timestamp import UtcTimestamp


class TimeframeKind(str, Enum):
    MINUTES = "minutes"
    DAYS = "days"
    WEEKS = "weeks"


# Minute units accepted by the candle endpoints.
_MINUTE_UNITS = (1, 3, 5, 10, 15, 30, 60, 240)
_SUPPORTED_CODES = tuple(f"{u}m" for u in _MINUTE_UNITS) + ("1d", "1w")

_ALIASES = {
    "1h": "60m",
    "4h": "240m",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class Timeframe:
    """
    Timeframe — bar granularity of a candle timeline.

    Representation:
    - code: "1m", "3m", ..., "240m", "1d", "1w"
    - kind/unit are derived from the code; `unit` is the minute count for
      minute timeframes and 1 otherwise.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.strip().lower()
        normalized = _ALIASES.get(normalized, normalized)
        object.__setattr__(self, "code", normalized)

        if normalized not in _SUPPORTED_CODES:
            raise ValueError(
                f"Unsupported timeframe={normalized!r}. Supported: {list(_SUPPORTED_CODES)}"
            )

    @classmethod
    def minutes(cls, unit: int) -> Timeframe:
        return cls(f"{unit}m")

    @classmethod
    def supported(cls) -> tuple[Timeframe, ...]:
        return tuple(cls(code) for code in _SUPPORTED_CODES)

    @property
    def kind(self) -> TimeframeKind:
        if self.code.endswith("m"):
            return TimeframeKind.MINUTES
        if self.code == "1d":
            return TimeframeKind.DAYS
        return TimeframeKind.WEEKS

    @property
    def unit(self) -> int:
        if self.kind is TimeframeKind.MINUTES:
            return int(self.code[:-1])
        return 1

    def duration(self) -> timedelta:
        if self.kind is TimeframeKind.MINUTES:
            return timedelta(minutes=self.unit)
        if self.kind is TimeframeKind.DAYS:
            return timedelta(days=1)
        return timedelta(weeks=1)

    def align(self, ts: UtcTimestamp) -> UtcTimestamp:
        """
        Canonical bar timestamp for `ts`.

        Minute timeframes floor to the unit boundary since the epoch (UTC); day and week
        timeframes floor to the UTC day, keeping the weekday anchor chosen by the exchange.
        """
        step = self.duration() if self.kind is TimeframeKind.MINUTES else timedelta(days=1)
        step_ms = step // timedelta(milliseconds=1)
        bucket_ms = (ts.to_epoch_ms() // step_ms) * step_ms
        return UtcTimestamp(_EPOCH + timedelta(milliseconds=bucket_ms))

    def __str__(self) -> str:
        return self.code

