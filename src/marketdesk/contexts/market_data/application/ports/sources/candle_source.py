from __future__ import annotations

from typing import Protocol, Sequence

from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe, UtcTimestamp


class CandleSource(Protocol):
    """
    Source port returning one page of OHLC bars.

    Contract:
    - fetch_bars(instrument_id, timeframe, count, before) returns up to `count` bars
      strictly older than `before` (or the most recent bars when `before` is None).
    - `count` is in [1, 200].
    - every returned bar carries a canonical timestamp (UTC, aligned to `timeframe`).
    - order of the returned page is unspecified; callers sort.
    - raises SourceError subclasses on failure.
    """

    def fetch_bars(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        count: int,
        before: UtcTimestamp | None = None,
    ) -> Sequence[CandleBar]:
        ...
