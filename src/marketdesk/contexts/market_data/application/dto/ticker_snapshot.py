from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from marketdesk.shared_kernel.primitives import InstrumentId, UtcTimestamp


class ChangeDirection(str, Enum):
    RISE = "RISE"
    FALL = "FALL"
    EVEN = "EVEN"


@dataclass(frozen=True, slots=True)
class TickerSnapshot:
    """
    Current trade state of one instrument as reported by the ticker feed.

    A new snapshot fully replaces the previous one of the same instrument.
    `signed_change_rate` is a fraction (0.012 == +1.2%) versus the previous close.
    """

    instrument_id: InstrumentId

    trade_price: float
    opening_price: float
    high_price: float
    low_price: float
    prev_closing_price: float

    change: ChangeDirection
    signed_change_price: float
    signed_change_rate: float

    acc_trade_price_24h: float
    acc_trade_volume_24h: float

    timestamp: UtcTimestamp

    def __post_init__(self) -> None:
        if self.trade_price < 0:
            raise ValueError(f"trade_price must be >= 0, got {self.trade_price}")
        if self.acc_trade_price_24h < 0:
            raise ValueError(f"acc_trade_price_24h must be >= 0, got {self.acc_trade_price_24h}")
        if self.acc_trade_volume_24h < 0:
            raise ValueError(f"acc_trade_volume_24h must be >= 0, got {self.acc_trade_volume_24h}")
