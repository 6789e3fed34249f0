from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

from prometheus_client import CollectorRegistry

from apps.api.wiring.modules import (
    MarketDeskMetrics,
    build_market_desk_runtime,
    build_market_desk_runtime_from_sources,
)
from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpResponse
from marketdesk.contexts.market_data.adapters.outbound.config import (
    MarketDeskRuntimeConfig,
    MetricsConfig,
    load_marketdesk_runtime_config,
)
from marketdesk.contexts.market_data.application.dto import (
    ChangeDirection,
    Instrument,
    TickerSnapshot,
)
from marketdesk.contexts.market_data.domain.errors import SourceUnavailableError
from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe, UtcTimestamp

_DEV_CONFIG = Path(__file__).resolve().parents[4] / "configs" / "dev" / "marketdesk.yaml"
_NOW = UtcTimestamp(datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc))


def _config() -> MarketDeskRuntimeConfig:
    cfg = load_marketdesk_runtime_config(_DEV_CONFIG)
    sources = dataclasses.replace(
        cfg.sources,
        ticker=dataclasses.replace(cfg.sources.ticker, interval_s=0.01),
    )
    return dataclasses.replace(cfg, sources=sources, metrics=MetricsConfig(port=0))


class _Catalog:
    def fetch_all(self) -> Sequence[Instrument]:
        return [
            Instrument(InstrumentId.parse("KRW-BTC"), "비트코인", "Bitcoin"),
            Instrument(InstrumentId.parse("KRW-ETH"), "이더리움", "Ethereum"),
        ]


class _Tickers:
    def __init__(self) -> None:
        self.requested: list[tuple[InstrumentId, ...]] = []

    def fetch(self, instrument_ids: Sequence[InstrumentId]) -> Sequence[TickerSnapshot]:
        self.requested.append(tuple(instrument_ids))
        return [
            TickerSnapshot(
                instrument_id=instrument_id,
                trade_price=100.0,
                opening_price=100.0,
                high_price=100.0,
                low_price=100.0,
                prev_closing_price=100.0,
                change=ChangeDirection.EVEN,
                signed_change_price=0.0,
                signed_change_rate=0.0,
                acc_trade_price_24h=1.0,
                acc_trade_volume_24h=1.0,
                timestamp=_NOW,
            )
            for instrument_id in instrument_ids
        ]


class _ReferencePrices:
    def fetch_all(self) -> Mapping[str, float]:
        return {"BTCUSDT": 0.07}


class _FailingRate:
    def fetch(self) -> float:
        raise SourceUnavailableError("rate api down", source="rate")


class _Candles:
    def fetch_bars(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        count: int,
        before: UtcTimestamp | None = None,
    ) -> Sequence[CandleBar]:
        return []


def test_runtime_polls_sources_into_board_and_records_metrics() -> None:
    async def _scenario() -> None:
        registry = CollectorRegistry()
        tickers = _Tickers()
        runtime = build_market_desk_runtime_from_sources(
            config=_config(),
            catalog_source=_Catalog(),
            ticker_feed=tickers,
            reference_feed=_ReferencePrices(),
            rate_source=_FailingRate(),
            candle_source=_Candles(),
            metrics=MarketDeskMetrics(registry=registry),
        )

        await runtime.start()
        assert runtime.running is True

        async def _wait_ready() -> None:
            while True:
                snapshot = runtime.aggregator.current_snapshot()
                if not snapshot.is_loading and "rate" in snapshot.stale_sources:
                    return
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_wait_ready(), timeout=5.0)
        await runtime.stop()
        assert runtime.running is False

        snapshot = runtime.aggregator.current_snapshot()
        assert len(snapshot.records) == 2
        assert snapshot.error is None
        assert snapshot.rate == 1350.0
        assert tickers.requested[0] == (
            InstrumentId.parse("KRW-BTC"),
            InstrumentId.parse("KRW-ETH"),
        )

        assert registry.get_sample_value(
            "marketdesk_source_poll_runs_total", {"source": "catalog"}
        ) == 1.0
        assert registry.get_sample_value(
            "marketdesk_source_poll_errors_total",
            {"source": "rate", "kind": "source_unavailable"},
        ) == 1.0
        assert registry.get_sample_value("marketdesk_board_records") == 2.0
        assert registry.get_sample_value("marketdesk_board_stale_sources") == 1.0

    asyncio.run(_scenario())


def test_candle_store_metrics_count_backfill_outcomes() -> None:
    async def _scenario() -> None:
        registry = CollectorRegistry()
        runtime = build_market_desk_runtime_from_sources(
            config=_config(),
            catalog_source=_Catalog(),
            ticker_feed=_Tickers(),
            reference_feed=_ReferencePrices(),
            rate_source=_FailingRate(),
            candle_source=_Candles(),
            metrics=MarketDeskMetrics(registry=registry),
        )
        btc = InstrumentId.parse("KRW-BTC")
        m1 = Timeframe("1m")
        runtime.store.merge_live(
            btc,
            m1,
            [
                CandleBar(
                    instrument_id=btc,
                    ts=_NOW,
                    open=1.0,
                    high=1.0,
                    low=1.0,
                    close=1.0,
                    acc_trade_price=1.0,
                    acc_trade_volume=1.0,
                )
            ],
        )

        await runtime.store.request_backfill(btc, m1)

        assert registry.get_sample_value(
            "marketdesk_candle_backfills_total", {"timeframe": "1m", "outcome": "exhausted"}
        ) == 1.0

    asyncio.run(_scenario())


class _RecordingHttp:
    def __init__(self) -> None:
        self.urls: list[str] = []

    def get_json(self, *, url: str, params: Mapping[str, Any], **_kwargs: Any) -> HttpResponse:
        self.urls.append(url)
        return HttpResponse(status_code=200, headers={}, body=[])


def test_build_runtime_wires_rest_adapters_to_configured_urls() -> None:
    http = _RecordingHttp()
    runtime = build_market_desk_runtime(
        config=_config(),
        http=http,
        metrics=MarketDeskMetrics(registry=CollectorRegistry()),
    )

    assert [poller.name for poller in runtime.pollers] == ["catalog", "ticker", "reference", "rate"]
    assert runtime.store.page_size == 200
    assert http.urls == []
