"""
Composition of the market desk runtime: sources, pollers, aggregator, candle store and
selected-chart session, plus the Prometheus metrics bundle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from marketdesk.contexts.market_data.adapters.outbound.clients.binance import (
    RestBinanceReferencePriceFeed,
)
from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import (
    HttpClient,
    RequestsHttpClient,
)
from marketdesk.contexts.market_data.adapters.outbound.clients.exchange_rate import (
    RestExchangeRateSource,
)
from marketdesk.contexts.market_data.adapters.outbound.clients.upbit import (
    RestUpbitCandleSource,
    RestUpbitInstrumentCatalogSource,
    RestUpbitTickerFeed,
)
from marketdesk.contexts.market_data.adapters.outbound.config import MarketDeskRuntimeConfig
from marketdesk.contexts.market_data.application.dto import (
    BackfillOutcome,
    BoardSnapshot,
    TimelineKey,
)
from marketdesk.contexts.market_data.application.ports import (
    CandleSource,
    Clock,
    InstrumentCatalogSource,
    RateSource,
    ReferencePriceFeed,
    TickerFeed,
)
from marketdesk.contexts.market_data.application.services import (
    SOURCE_CATALOG,
    SOURCE_RATE,
    SOURCE_REFERENCE,
    SOURCE_TICKER,
    CandleStore,
    CandleStoreHooks,
    ChartSession,
    ChartSessionSettings,
    MarketBoardAggregator,
    SourcePoller,
    SourcePollerHooks,
    SymbolRemapper,
)
from marketdesk.contexts.market_data.domain.errors import ErrorKind
from marketdesk.platform.time.system_clock import SystemClock

log = logging.getLogger(__name__)


class MarketDeskMetrics:
    """
    Prometheus metrics bundle for source polling, board state and candle backfills.
    """

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        """
        Create market desk metric objects.

        Parameters:
        - registry: optional explicit Prometheus registry (tests can pass isolated one).

        Returns:
        - None.

        Assumptions/Invariants:
        - Metrics are instantiated once per process per registry.

        Errors/Exceptions:
        - May raise registration errors on duplicate metric names.

        Side effects:
        - Registers metrics in the selected Prometheus registry.
        """
        effective_registry = registry if registry is not None else REGISTRY

        self.source_poll_runs_total = Counter(
            "marketdesk_source_poll_runs_total",
            "Source poll count",
            labelnames=("source",),
            registry=effective_registry,
        )
        self.source_poll_errors_total = Counter(
            "marketdesk_source_poll_errors_total",
            "Source poll failures grouped by error kind",
            labelnames=("source", "kind"),
            registry=effective_registry,
        )
        self.source_poll_duration_seconds = Histogram(
            "marketdesk_source_poll_duration_seconds",
            "Source poll duration in seconds",
            labelnames=("source",),
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0),
            registry=effective_registry,
        )
        self.board_records = Gauge(
            "marketdesk_board_records",
            "Records in the current board snapshot",
            registry=effective_registry,
        )
        self.board_stale_sources = Gauge(
            "marketdesk_board_stale_sources",
            "Sources currently serving last-known data",
            registry=effective_registry,
        )
        self.candle_backfills_total = Counter(
            "marketdesk_candle_backfills_total",
            "Candle backfill requests grouped by outcome",
            labelnames=("timeframe", "outcome"),
            registry=effective_registry,
        )
        self.candle_backfill_duration_seconds = Histogram(
            "marketdesk_candle_backfill_duration_seconds",
            "Candle backfill duration in seconds",
            labelnames=("timeframe",),
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0),
            registry=effective_registry,
        )
        self.candle_load_errors_total = Counter(
            "marketdesk_candle_load_errors_total",
            "Candle timeline load failures grouped by error kind",
            labelnames=("kind",),
            registry=effective_registry,
        )

    def poller_hooks(self) -> SourcePollerHooks:
        def _started(source: str) -> None:
            self.source_poll_runs_total.labels(source=source).inc()

        def _succeeded(source: str, duration: float) -> None:
            self.source_poll_duration_seconds.labels(source=source).observe(duration)

        def _failed(source: str, kind: ErrorKind, duration: float) -> None:
            self.source_poll_errors_total.labels(source=source, kind=kind.value).inc()
            self.source_poll_duration_seconds.labels(source=source).observe(duration)

        return SourcePollerHooks(
            on_poll_started=_started,
            on_poll_succeeded=_succeeded,
            on_poll_failed=_failed,
        )

    def candle_store_hooks(self) -> CandleStoreHooks:
        def _backfill_finished(key: TimelineKey, outcome: BackfillOutcome, duration: float) -> None:
            timeframe = str(key.timeframe)
            self.candle_backfills_total.labels(timeframe=timeframe, outcome=outcome.value).inc()
            self.candle_backfill_duration_seconds.labels(timeframe=timeframe).observe(duration)

        def _load_failed(_key: TimelineKey, kind: ErrorKind) -> None:
            self.candle_load_errors_total.labels(kind=kind.value).inc()

        return CandleStoreHooks(
            on_backfill_finished=_backfill_finished,
            on_load_failed=_load_failed,
        )

    def observe_board(self, snapshot: BoardSnapshot) -> None:
        self.board_records.set(len(snapshot.records))
        self.board_stale_sources.set(len(snapshot.stale_sources))


class MarketDeskRuntime:
    """
    Runtime orchestrator owning every long-lived market desk component.

    Parameters:
    - aggregator: board aggregator fed by the pollers.
    - pollers: one poller per board source.
    - store: candle store.
    - session: selected-chart session bound to the store.
    - metrics_port: HTTP port for `/metrics`; 0 disables the endpoint.

    Assumptions/Invariants:
    - `start` and `stop` are called from the event loop that serves requests.
    """

    def __init__(
        self,
        *,
        aggregator: MarketBoardAggregator,
        pollers: Sequence[SourcePoller],
        store: CandleStore,
        session: ChartSession,
        metrics_port: int = 0,
    ) -> None:
        if aggregator is None:  # type: ignore[truthy-bool]
            raise ValueError("MarketDeskRuntime requires aggregator")
        if store is None:  # type: ignore[truthy-bool]
            raise ValueError("MarketDeskRuntime requires store")
        if session is None:  # type: ignore[truthy-bool]
            raise ValueError("MarketDeskRuntime requires session")
        if metrics_port < 0:
            raise ValueError("metrics_port must be >= 0")

        self._aggregator = aggregator
        self._pollers = tuple(pollers)
        self._store = store
        self._session = session
        self._metrics_port = metrics_port
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def aggregator(self) -> MarketBoardAggregator:
        return self._aggregator

    @property
    def pollers(self) -> tuple[SourcePoller, ...]:
        return self._pollers

    @property
    def store(self) -> CandleStore:
        return self._store

    @property
    def session(self) -> ChartSession:
        return self._session

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """
        Start the metrics endpoint and one periodic task per poller.

        Parameters:
        - None.

        Returns:
        - None.

        Assumptions/Invariants:
        - Method may be called repeatedly; tasks are spawned only once.

        Errors/Exceptions:
        - Propagates metrics server bind errors.

        Side effects:
        - Starts Prometheus endpoint when enabled.
        - Spawns poller tasks.
        """
        if self._tasks:
            return
        if self._metrics_port > 0:
            start_http_server(self._metrics_port)
            log.info("marketdesk metrics server started on port %s", self._metrics_port)

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        for poller in self._pollers:
            task = asyncio.create_task(poller.run(stop_event), name=f"poller-{poller.name}")
            self._tasks.append(task)
        log.info("marketdesk runtime started with %s pollers", len(self._tasks))

    async def stop(self) -> None:
        """
        Stop pollers and the selected-chart session; safe to call multiple times.
        """
        if self._stop_event is not None:
            self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._stop_event = None
        await self._session.close()


def build_market_desk_runtime(
    *,
    config: MarketDeskRuntimeConfig,
    http: HttpClient | None = None,
    clock: Clock | None = None,
    metrics: MarketDeskMetrics | None = None,
) -> MarketDeskRuntime:
    """
    Build the runtime over the REST adapters described by `config`.

    Parameters:
    - config: parsed runtime config.
    - http: optional HTTP client override (tests pass a fake).
    - clock: optional clock override.
    - metrics: optional metrics bundle; a default-registry bundle is created otherwise.

    Returns:
    - Runtime ready to `start()`.

    Assumptions/Invariants:
    - No network call happens before `start()`.

    Errors/Exceptions:
    - Raises `ValueError` on invalid configuration values.

    Side effects:
    - Registers metrics in the default Prometheus registry when `metrics` is None.
    """
    effective_http = http if http is not None else RequestsHttpClient()
    sources = config.sources

    return build_market_desk_runtime_from_sources(
        config=config,
        catalog_source=RestUpbitInstrumentCatalogSource(
            cfg=sources.catalog,
            http_cfg=config.http,
            http=effective_http,
        ),
        ticker_feed=RestUpbitTickerFeed(
            cfg=sources.ticker,
            http_cfg=config.http,
            http=effective_http,
        ),
        reference_feed=RestBinanceReferencePriceFeed(
            cfg=sources.reference,
            http_cfg=config.http,
            http=effective_http,
        ),
        rate_source=RestExchangeRateSource(
            cfg=sources.rate,
            http_cfg=config.http,
            http=effective_http,
        ),
        candle_source=RestUpbitCandleSource(
            base_url=sources.candles_base_url,
            http_cfg=config.http,
            http=effective_http,
        ),
        clock=clock,
        metrics=metrics,
    )


def build_market_desk_runtime_from_sources(
    *,
    config: MarketDeskRuntimeConfig,
    catalog_source: InstrumentCatalogSource,
    ticker_feed: TickerFeed,
    reference_feed: ReferencePriceFeed,
    rate_source: RateSource,
    candle_source: CandleSource,
    clock: Clock | None = None,
    metrics: MarketDeskMetrics | None = None,
) -> MarketDeskRuntime:
    """
    Build the runtime over explicit source ports.

    Parameters:
    - config: parsed runtime config (intervals, board and candle settings).
    - catalog_source: instrument catalog port.
    - ticker_feed: ticker port.
    - reference_feed: reference price port.
    - rate_source: conversion rate port.
    - candle_source: candle page port.
    - clock: optional clock override.
    - metrics: optional metrics bundle.

    Returns:
    - Runtime ready to `start()`.

    Assumptions/Invariants:
    - The ticker poller waits for the first catalog result.

    Errors/Exceptions:
    - Raises `ValueError` on invalid configuration values.

    Side effects:
    - Subscribes the metrics bundle to board snapshots.
    """
    effective_clock = clock if clock is not None else SystemClock()
    effective_metrics = metrics if metrics is not None else MarketDeskMetrics()
    board = config.board

    aggregator = MarketBoardAggregator(
        clock=effective_clock,
        remapper=SymbolRemapper(reference_quote=board.reference_quote, symbol_map=board.symbol_map),
        quote_market=board.quote_market,
        stable_symbol=board.stable_symbol,
        fallback_rate=board.fallback_rate,
    )
    aggregator.subscribe(effective_metrics.observe_board)

    hooks = effective_metrics.poller_hooks()
    sources = config.sources
    pollers: list[SourcePoller] = [
        SourcePoller(
            name=SOURCE_CATALOG,
            fetch=catalog_source.fetch_all,
            apply=aggregator.apply_catalog,
            interval_s=sources.catalog.interval_s,
            on_failure=lambda kind: aggregator.record_failure(SOURCE_CATALOG, kind),
            hooks=hooks,
        ),
        SourcePoller(
            name=SOURCE_TICKER,
            fetch=lambda: ticker_feed.fetch(aggregator.ticker_instrument_ids()),
            apply=aggregator.apply_tickers,
            interval_s=sources.ticker.interval_s,
            on_failure=lambda kind: aggregator.record_failure(SOURCE_TICKER, kind),
            ready=lambda: aggregator.has_catalog,
            hooks=hooks,
        ),
        SourcePoller(
            name=SOURCE_REFERENCE,
            fetch=reference_feed.fetch_all,
            apply=aggregator.apply_reference_prices,
            interval_s=sources.reference.interval_s,
            on_failure=lambda kind: aggregator.record_failure(SOURCE_REFERENCE, kind),
            hooks=hooks,
        ),
        SourcePoller(
            name=SOURCE_RATE,
            fetch=rate_source.fetch,
            apply=aggregator.apply_rate,
            interval_s=sources.rate.interval_s,
            on_failure=lambda kind: aggregator.record_failure(SOURCE_RATE, kind),
            hooks=hooks,
        ),
    ]

    candles = config.candles
    store = CandleStore(
        source=candle_source,
        page_size=candles.page_size,
        hooks=effective_metrics.candle_store_hooks(),
    )
    session = ChartSession(
        store=store,
        source=candle_source,
        settings=ChartSessionSettings(
            live_interval_s=candles.live_interval_s,
            live_page_size=candles.live_page_size,
            backfill_tolerance=candles.backfill_tolerance,
            restore_retry_delay_s=candles.restore_retry_delay_s,
        ),
        hooks=hooks,
    )

    return MarketDeskRuntime(
        aggregator=aggregator,
        pollers=pollers,
        store=store,
        session=session,
        metrics_port=config.metrics.port,
    )
