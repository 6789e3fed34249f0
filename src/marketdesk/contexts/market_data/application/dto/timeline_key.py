from __future__ import annotations

from dataclasses import dataclass

from marketdesk.shared_kernel.primitives import InstrumentId, Timeframe


@dataclass(frozen=True, slots=True)
class TimelineKey:
    """Identity of one candle timeline: (instrument, timeframe)."""

    instrument_id: InstrumentId
    timeframe: Timeframe

    def __str__(self) -> str:
        return f"{self.instrument_id}/{self.timeframe}"
