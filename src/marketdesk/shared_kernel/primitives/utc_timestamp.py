from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class UtcTimestamp:
    """
    UtcTimestamp — the single time type of the system, always UTC.

    Rules:
    - the input datetime must be timezone-aware (naive is rejected)
    - the value is stored in UTC
    - precision is truncated to milliseconds
    """

    value: datetime

    def __post_init__(self) -> None:
        dt = self.value

        # tzinfo may be set while utcoffset() still returns None.
        if dt.tzinfo is None or dt.utcoffset() is None:
            raise ValueError("UtcTimestamp requires a timezone-aware datetime (naive datetime is forbidden)")  # noqa: E501

        dt_utc = dt.astimezone(timezone.utc)
        ms = (dt_utc.microsecond // 1000) * 1000
        object.__setattr__(self, "value", dt_utc.replace(microsecond=ms))

    @classmethod
    def from_epoch_ms(cls, ms: int) -> UtcTimestamp:
        return cls(_EPOCH + timedelta(milliseconds=int(ms)))

    @classmethod
    def from_utc_iso(cls, text: str) -> UtcTimestamp:
        """
        Parse an ISO-8601 string that is known to be UTC.

        Exchange payloads often omit the offset on fields that are documented as UTC
        (e.g. `2026-02-01T00:00:00`); such values are interpreted as UTC, never as local time.
        """
        raw = text.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
        if dt.tzinfo is None or dt.utcoffset() is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return cls(dt)

    def to_epoch_ms(self) -> int:
        return (self.value - _EPOCH) // timedelta(milliseconds=1)

    def __str__(self) -> str:
        """
        ISO string in UTC with milliseconds and the `Z` suffix.
        Example: 2026-02-04T12:34:56.789Z
        """
        s = self.value.isoformat(timespec="milliseconds")
        if s.endswith("+00:00"):
            s = s[:-6] + "Z"
        return s
