from __future__ import annotations

from dataclasses import dataclass, field

from marketdesk.contexts.market_data.application.dto.instrument import Instrument
from marketdesk.contexts.market_data.application.dto.ticker_snapshot import TickerSnapshot
from marketdesk.contexts.market_data.domain.errors import ErrorKind
from marketdesk.shared_kernel.primitives import InstrumentId, UtcTimestamp


@dataclass(frozen=True, slots=True)
class UnifiedRecord:
    """
    One board row: catalog entry joined with ticker, reference price and rate.

    Derived fields:
    - converted_price = trade_price / rate (None when no rate is known)
    - spread_percent = (trade_price / (reference_price * rate) - 1) * 100
      (None when no reference price is known)
    """

    instrument: Instrument
    ticker: TickerSnapshot
    rate: float | None
    reference_price: float | None
    converted_price: float | None
    spread_percent: float | None

    @property
    def instrument_id(self) -> InstrumentId:
        return self.instrument.instrument_id

    def as_dict(self) -> dict:
        t = self.ticker
        return {
            "market": str(self.instrument_id),
            "local_name": self.instrument.local_name,
            "reference_name": self.instrument.reference_name,
            "trade_price": t.trade_price,
            "high_price": t.high_price,
            "low_price": t.low_price,
            "change": t.change.value,
            "signed_change_price": t.signed_change_price,
            "signed_change_rate": t.signed_change_rate,
            "acc_trade_price_24h": t.acc_trade_price_24h,
            "acc_trade_volume_24h": t.acc_trade_volume_24h,
            "timestamp": str(t.timestamp),
            "rate": self.rate,
            "reference_price": self.reference_price,
            "converted_price": self.converted_price,
            "spread_percent": self.spread_percent,
        }


@dataclass(frozen=True, slots=True)
class BoardSnapshot:
    """
    Immutable read model published by the market board aggregator.

    Consumers tell states apart with:
    - is_loading=True, records=() -> no data yet
    - error set, records non-empty -> last-known data, mandatory source failing
    - error=CONFIGURATION -> the request will never succeed as configured
    - stale_sources non-empty -> optional inputs are served from their last-known value
    """

    records: tuple[UnifiedRecord, ...]
    is_loading: bool
    error: ErrorKind | None
    rate: float | None
    generated_at: UtcTimestamp | None
    stale_sources: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def initial(cls) -> BoardSnapshot:
        return cls(records=(), is_loading=True, error=None, rate=None, generated_at=None)
