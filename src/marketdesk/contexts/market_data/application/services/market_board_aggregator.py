from __future__ import annotations

import logging
from typing import Callable, Mapping, Sequence

from marketdesk.contexts.market_data.application.dto import (
    BoardSnapshot,
    Instrument,
    TickerSnapshot,
    UnifiedRecord,
)
from marketdesk.contexts.market_data.application.ports.clock.clock import Clock
from marketdesk.contexts.market_data.application.services.spread_calculator import (
    converted_price,
    spread_percent,
    stable_coin_spread_percent,
)
from marketdesk.contexts.market_data.application.services.symbol_remapper import SymbolRemapper
from marketdesk.contexts.market_data.domain.errors import ErrorKind
from marketdesk.platform.events import EventChannel, Subscription
from marketdesk.shared_kernel.primitives import InstrumentId, Symbol

log = logging.getLogger(__name__)

SOURCE_CATALOG = "catalog"
SOURCE_TICKER = "ticker"
SOURCE_REFERENCE = "reference"
SOURCE_RATE = "rate"

_MANDATORY_SOURCES = (SOURCE_TICKER, SOURCE_CATALOG)
_KNOWN_SOURCES = frozenset((SOURCE_CATALOG, SOURCE_TICKER, SOURCE_REFERENCE, SOURCE_RATE))


class MarketBoardAggregator:
    """
    Joins catalog, ticker, reference prices and rate into one board snapshot.

    Parameters:
    - clock: UTC clock stamping `generated_at`.
    - remapper: local base asset -> reference exchange key mapping.
    - quote_market: quote asset of the local markets shown on the board (e.g. `KRW`).
    - stable_symbol: base asset priced at 1 reference quote unit (e.g. `USDT`).
    - fallback_rate: rate used until the rate source succeeds; None disables conversion
      until a real rate arrives.

    Assumptions/Invariants:
    - All methods run on the event loop thread; none of them suspends.
    - Records are emitted only after both catalog and ticker have succeeded at least once.
    - Derived fields are recomputed from scratch on every pass.
    - A failed input never replaces the last-known value of that input.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        remapper: SymbolRemapper,
        quote_market: str = "KRW",
        stable_symbol: str = "USDT",
        fallback_rate: float | None = 1350.0,
    ) -> None:
        """
        Initialize empty aggregator state.

        Parameters:
        - clock: UTC clock.
        - remapper: reference symbol mapping.
        - quote_market: local quote asset filter.
        - stable_symbol: stable coin base asset.
        - fallback_rate: optional rate used before the first successful rate poll.

        Returns:
        - None.

        Assumptions/Invariants:
        - `fallback_rate`, when set, is positive.

        Errors/Exceptions:
        - Raises `ValueError` on invalid constructor arguments.

        Side effects:
        - None.
        """
        if clock is None:  # type: ignore[truthy-bool]
            raise ValueError("MarketBoardAggregator requires clock")
        if remapper is None:  # type: ignore[truthy-bool]
            raise ValueError("MarketBoardAggregator requires remapper")
        if fallback_rate is not None and fallback_rate <= 0:
            raise ValueError(f"fallback_rate must be > 0, got {fallback_rate}")

        self._clock = clock
        self._remapper = remapper
        self._quote_market = Symbol(quote_market)
        self._stable_symbol = Symbol(stable_symbol)
        self._fallback_rate = fallback_rate

        self._catalog: tuple[Instrument, ...] | None = None
        self._ticker_ids: tuple[InstrumentId, ...] = ()
        self._tickers: dict[InstrumentId, TickerSnapshot] | None = None
        self._reference_prices: Mapping[str, float] = {}
        self._rate: float | None = None

        self._failures: dict[str, ErrorKind] = {}
        self._snapshot = BoardSnapshot.initial()
        self._channel: EventChannel[BoardSnapshot] = EventChannel(name="market_board")

    def current_snapshot(self) -> BoardSnapshot:
        return self._snapshot

    def subscribe(self, callback: Callable[[BoardSnapshot], None]) -> Subscription:
        """
        Register a snapshot listener.

        Parameters:
        - callback: invoked synchronously with every newly computed snapshot.

        Returns:
        - Subscription handle; `unsubscribe()` stops delivery.

        Assumptions/Invariants:
        - The current snapshot is not replayed to new subscribers.

        Errors/Exceptions:
        - Raises `ValueError` when callback is missing.

        Side effects:
        - None.
        """
        return self._channel.subscribe(callback)

    @property
    def has_catalog(self) -> bool:
        return self._catalog is not None

    def ticker_instrument_ids(self) -> tuple[InstrumentId, ...]:
        """Catalog ids of the configured quote market, in catalog order."""
        return self._ticker_ids

    def apply_catalog(self, instruments: Sequence[Instrument]) -> BoardSnapshot:
        """
        Replace the instrument catalog.

        Parameters:
        - instruments: full catalog from the catalog source.

        Returns:
        - Newly computed snapshot.

        Assumptions/Invariants:
        - Only instruments quoted in `quote_market` are kept; duplicates keep the first entry.

        Errors/Exceptions:
        - None.

        Side effects:
        - Publishes the new snapshot to subscribers.
        """
        seen: set[InstrumentId] = set()
        kept: list[Instrument] = []
        for instrument in instruments:
            instrument_id = instrument.instrument_id
            if instrument_id.quote != self._quote_market or instrument_id in seen:
                continue
            seen.add(instrument_id)
            kept.append(instrument)

        self._catalog = tuple(kept)
        self._ticker_ids = tuple(item.instrument_id for item in kept)
        self._failures.pop(SOURCE_CATALOG, None)
        return self._recompute()

    def apply_tickers(self, snapshots: Sequence[TickerSnapshot]) -> BoardSnapshot:
        """
        Overlay ticker snapshots; each one fully replaces the previous one of its instrument.
        """
        tickers = dict(self._tickers) if self._tickers is not None else {}
        for snapshot in snapshots:
            tickers[snapshot.instrument_id] = snapshot
        self._tickers = tickers
        self._failures.pop(SOURCE_TICKER, None)
        return self._recompute()

    def apply_reference_prices(self, prices: Mapping[str, float]) -> BoardSnapshot:
        """
        Replace reference prices.

        An empty mapping is what the fail-open reference feed returns on failure: it never
        replaces a previously non-empty mapping and marks the source stale instead.
        """
        if not prices:
            if self._reference_prices:
                log.warning("reference feed returned no prices; keeping last-known prices")
            self._failures[SOURCE_REFERENCE] = ErrorKind.STALE_DATA
            return self._recompute()

        self._reference_prices = {str(k).upper(): float(v) for k, v in prices.items()}
        self._failures.pop(SOURCE_REFERENCE, None)
        return self._recompute()

    def apply_rate(self, rate: float) -> BoardSnapshot:
        if rate is None or rate <= 0:  # type: ignore[redundant-expr]
            log.warning("ignoring non-positive rate %r", rate)
            self._failures[SOURCE_RATE] = ErrorKind.MALFORMED_RESPONSE
            return self._recompute()
        self._rate = float(rate)
        self._failures.pop(SOURCE_RATE, None)
        return self._recompute()

    def record_failure(self, source: str, kind: ErrorKind) -> BoardSnapshot:
        """
        Register a failed poll of `source` without touching its last-known value.

        Parameters:
        - source: one of `catalog`, `ticker`, `reference`, `rate`.
        - kind: classified failure.

        Returns:
        - Newly computed snapshot.

        Assumptions/Invariants:
        - Catalog/ticker failures surface in `error`; every failure surfaces in
          `stale_sources` until the source succeeds again.

        Errors/Exceptions:
        - Raises `ValueError` for an unknown source name.

        Side effects:
        - Publishes the new snapshot to subscribers.
        """
        if source not in _KNOWN_SOURCES:
            raise ValueError(f"unknown board source: {source!r}")
        self._failures[source] = kind
        return self._recompute()

    def effective_rate(self) -> float | None:
        if self._rate is not None:
            return self._rate
        return self._fallback_rate

    def _recompute(self) -> BoardSnapshot:
        rate = self.effective_rate()
        error = _first_mandatory_error(self._failures)
        stale = frozenset(self._failures)

        if self._catalog is None or self._tickers is None:
            snapshot = BoardSnapshot(
                records=(),
                is_loading=True,
                error=error,
                rate=rate,
                generated_at=self._clock.now(),
                stale_sources=stale,
            )
        else:
            records = [
                self._build_record(instrument, self._tickers[instrument.instrument_id], rate)
                for instrument in self._catalog
                if instrument.instrument_id in self._tickers
            ]
            records.sort(key=lambda item: item.ticker.acc_trade_price_24h, reverse=True)
            snapshot = BoardSnapshot(
                records=tuple(records),
                is_loading=False,
                error=error,
                rate=rate,
                generated_at=self._clock.now(),
                stale_sources=stale,
            )

        self._snapshot = snapshot
        self._channel.publish(snapshot)
        return snapshot

    def _build_record(
        self,
        instrument: Instrument,
        ticker: TickerSnapshot,
        rate: float | None,
    ) -> UnifiedRecord:
        base = instrument.instrument_id.base
        trade_price = ticker.trade_price

        if base == self._stable_symbol:
            reference_price: float | None = 1.0
            spread = stable_coin_spread_percent(trade_price=trade_price, rate=rate)
        else:
            reference_price = self._reference_prices.get(self._remapper.reference_key(base))
            spread = spread_percent(
                trade_price=trade_price,
                reference_price=reference_price,
                rate=rate,
            )

        return UnifiedRecord(
            instrument=instrument,
            ticker=ticker,
            rate=rate,
            reference_price=reference_price,
            converted_price=converted_price(trade_price=trade_price, rate=rate),
            spread_percent=spread,
        )


def _first_mandatory_error(failures: Mapping[str, ErrorKind]) -> ErrorKind | None:
    for source in _MANDATORY_SOURCES:
        kind = failures.get(source)
        if kind is not None:
            return kind
    return None
