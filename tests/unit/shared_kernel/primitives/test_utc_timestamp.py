from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from marketdesk.shared_kernel.primitives import TimeRange, UtcTimestamp


def test_utc_timestamp_rejects_naive_datetime() -> None:
    with pytest.raises(ValueError):
        UtcTimestamp(datetime(2026, 2, 1, 0, 0))


def test_utc_timestamp_converts_to_utc_and_truncates_to_ms() -> None:
    kst = timezone(timedelta(hours=9))
    ts = UtcTimestamp(datetime(2026, 2, 1, 9, 0, 0, 123456, tzinfo=kst))

    assert str(ts) == "2026-02-01T00:00:00.123Z"


def test_from_utc_iso_treats_offsetless_text_as_utc() -> None:
    ts = UtcTimestamp.from_utc_iso("2026-02-01T00:00:00")

    assert ts == UtcTimestamp(datetime(2026, 2, 1, tzinfo=timezone.utc))
    assert UtcTimestamp.from_utc_iso("2026-02-01T00:00:00Z") == ts


def test_epoch_ms_round_trip() -> None:
    ts = UtcTimestamp.from_epoch_ms(1_770_000_000_123)

    assert ts.to_epoch_ms() == 1_770_000_000_123


def test_time_range_is_closed_interval() -> None:
    start = UtcTimestamp.from_utc_iso("2026-02-01T00:00:00")
    end = UtcTimestamp.from_utc_iso("2026-02-01T01:00:00")
    time_range = TimeRange(start=start, end=end)

    assert time_range.contains(start)
    assert time_range.contains(end)
    assert time_range.duration() == timedelta(hours=1)
    with pytest.raises(ValueError):
        TimeRange(start=end, end=start)
