from __future__ import annotations

from dataclasses import dataclass

from .instrument_id import InstrumentId
from .utc_timestamp import UtcTimestamp


@dataclass(frozen=True, slots=True)
class CandleBar:
    """
    CandleBar — one OHLC observation of an instrument for one timeframe bucket.

    `ts` is the canonical timestamp: UTC, aligned to the timeframe bucket. It is the
    only identity key of a bar; two bars with the same `ts` are the same bar.

    Fields:
    - OHLC
    - acc_trade_price (traded value within the bar), acc_trade_volume
    """

    instrument_id: InstrumentId
    ts: UtcTimestamp

    open: float
    high: float
    low: float
    close: float

    acc_trade_price: float
    acc_trade_volume: float

    def __post_init__(self) -> None:
        if self.instrument_id is None:  # type: ignore[truthy-bool]
            raise ValueError("CandleBar requires instrument_id")

        if self.high < max(self.open, self.close):
            raise ValueError("CandleBar requires high >= max(open, close)")

        if self.low > min(self.open, self.close):
            raise ValueError("CandleBar requires low <= min(open, close)")

        if self.acc_trade_price < 0:
            raise ValueError("CandleBar requires acc_trade_price >= 0")

        if self.acc_trade_volume < 0:
            raise ValueError("CandleBar requires acc_trade_volume >= 0")

    def as_dict(self) -> dict:
        return {
            "instrument_id": str(self.instrument_id),
            "ts": str(self.ts),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "acc_trade_price": self.acc_trade_price,
            "acc_trade_volume": self.acc_trade_volume,
        }
