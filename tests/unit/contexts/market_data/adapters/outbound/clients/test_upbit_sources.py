from __future__ import annotations

from typing import Any, Mapping

import pytest

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpResponse
from marketdesk.contexts.market_data.adapters.outbound.clients.upbit import (
    RestUpbitCandleSource,
    RestUpbitInstrumentCatalogSource,
    RestUpbitTickerFeed,
)
from marketdesk.contexts.market_data.adapters.outbound.config import (
    BackoffConfig,
    HttpConfig,
    SourceConfig,
)
from marketdesk.contexts.market_data.application.dto import ChangeDirection
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError
from marketdesk.shared_kernel.primitives import InstrumentId, Timeframe, UtcTimestamp

_HTTP_CFG = HttpConfig(
    timeout_s=5.0,
    retries=0,
    backoff=BackoffConfig(base_s=0.1, max_s=1.0, jitter_s=0.0),
)
_BASE_URL = "https://api.upbit.test"


class _FakeHttp:
    """HttpClient fake returning one fixed body and recording requests."""

    def __init__(self, body: Any) -> None:
        self._body = body
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def get_json(
        self,
        *,
        url: str,
        params: Mapping[str, Any],
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        backoff_max_s: float,
        backoff_jitter_s: float,
    ) -> HttpResponse:
        self.calls.append((url, dict(params)))
        return HttpResponse(status_code=200, headers={}, body=self._body)


def _source_cfg(name: str) -> SourceConfig:
    return SourceConfig(name=name, base_url=_BASE_URL, interval_s=1.0)


def _candle_row(market: str, utc: str, close: float) -> dict[str, Any]:
    return {
        "market": market,
        "candle_date_time_utc": utc,
        "candle_date_time_kst": "ignored",
        "opening_price": close,
        "high_price": close + 1.0,
        "low_price": close - 1.0,
        "trade_price": close,
        "candle_acc_trade_price": 1000.0,
        "candle_acc_trade_volume": 10.0,
    }


def test_catalog_maps_markets_and_skips_invalid_codes() -> None:
    http = _FakeHttp(
        [
            {"market": "KRW-BTC", "korean_name": "비트코인", "english_name": "Bitcoin"},
            {"market": "INVALID", "korean_name": "x", "english_name": "x"},
            {"market": "KRW-ETH"},
        ]
    )
    source = RestUpbitInstrumentCatalogSource(
        cfg=_source_cfg("catalog"),
        http_cfg=_HTTP_CFG,
        http=http,
    )

    instruments = source.fetch_all()

    assert [str(item.instrument_id) for item in instruments] == ["KRW-BTC", "KRW-ETH"]
    assert instruments[0].local_name == "비트코인"
    assert instruments[1].reference_name == ""
    assert http.calls == [(f"{_BASE_URL}/v1/market/all", {"isDetails": "false"})]


def test_catalog_rejects_non_list_payload() -> None:
    source = RestUpbitInstrumentCatalogSource(
        cfg=_source_cfg("catalog"),
        http_cfg=_HTTP_CFG,
        http=_FakeHttp({"error": "oops"}),
    )

    with pytest.raises(MalformedResponseError):
        source.fetch_all()


def test_ticker_feed_requests_comma_joined_markets() -> None:
    http = _FakeHttp(
        [
            {
                "market": "KRW-BTC",
                "trade_price": 100.0,
                "opening_price": 98.0,
                "high_price": 101.0,
                "low_price": 97.0,
                "prev_closing_price": 98.0,
                "change": "RISE",
                "signed_change_price": 2.0,
                "signed_change_rate": 0.0204,
                "acc_trade_price_24h": 5_000_000.0,
                "acc_trade_volume_24h": 50.0,
                "timestamp": 1_770_000_000_000,
            }
        ]
    )
    feed = RestUpbitTickerFeed(cfg=_source_cfg("ticker"), http_cfg=_HTTP_CFG, http=http)

    snapshots = feed.fetch([InstrumentId.parse("KRW-BTC"), InstrumentId.parse("KRW-ETH")])

    assert http.calls == [(f"{_BASE_URL}/v1/ticker", {"markets": "KRW-BTC,KRW-ETH"})]
    assert snapshots[0].change is ChangeDirection.RISE
    assert snapshots[0].timestamp == UtcTimestamp.from_epoch_ms(1_770_000_000_000)


def test_ticker_feed_skips_request_without_markets() -> None:
    http = _FakeHttp([])
    feed = RestUpbitTickerFeed(cfg=_source_cfg("ticker"), http_cfg=_HTTP_CFG, http=http)

    assert list(feed.fetch([])) == []
    assert http.calls == []


def test_ticker_feed_rejects_row_with_missing_field() -> None:
    feed = RestUpbitTickerFeed(
        cfg=_source_cfg("ticker"),
        http_cfg=_HTTP_CFG,
        http=_FakeHttp([{"market": "KRW-BTC", "change": "EVEN"}]),
    )

    with pytest.raises(MalformedResponseError):
        feed.fetch([InstrumentId.parse("KRW-BTC")])


def test_candle_source_routes_minutes_and_returns_ascending_aligned_bars() -> None:
    http = _FakeHttp(
        [
            _candle_row("KRW-BTC", "2026-02-01T00:02:00", 102.0),
            _candle_row("KRW-BTC", "2026-02-01T00:01:00", 101.0),
        ]
    )
    source = RestUpbitCandleSource(base_url=_BASE_URL, http_cfg=_HTTP_CFG, http=http)

    bars = source.fetch_bars(InstrumentId.parse("KRW-BTC"), Timeframe("1m"), 2)

    assert http.calls == [
        (f"{_BASE_URL}/v1/candles/minutes/1", {"market": "KRW-BTC", "count": 2})
    ]
    assert [str(bar.ts) for bar in bars] == [
        "2026-02-01T00:01:00.000Z",
        "2026-02-01T00:02:00.000Z",
    ]
    assert bars[1].close == 102.0


def test_candle_source_passes_cursor_and_drops_bars_not_older_than_it() -> None:
    http = _FakeHttp(
        [
            _candle_row("KRW-BTC", "2026-02-02T00:00:00", 2.0),
            _candle_row("KRW-BTC", "2026-02-01T00:00:00", 1.0),
        ]
    )
    source = RestUpbitCandleSource(base_url=_BASE_URL, http_cfg=_HTTP_CFG, http=http)
    cursor = UtcTimestamp.from_utc_iso("2026-02-02T00:00:00Z")

    bars = source.fetch_bars(InstrumentId.parse("KRW-BTC"), Timeframe("1d"), 200, before=cursor)

    assert http.calls == [
        (
            f"{_BASE_URL}/v1/candles/days",
            {"market": "KRW-BTC", "count": 200, "to": "2026-02-02T00:00:00Z"},
        )
    ]
    assert [str(bar.ts) for bar in bars] == ["2026-02-01T00:00:00.000Z"]


def test_candle_source_rejects_rows_of_other_market() -> None:
    source = RestUpbitCandleSource(
        base_url=_BASE_URL,
        http_cfg=_HTTP_CFG,
        http=_FakeHttp([_candle_row("KRW-ETH", "2026-02-01T00:00:00", 1.0)]),
    )

    with pytest.raises(MalformedResponseError):
        source.fetch_bars(InstrumentId.parse("KRW-BTC"), Timeframe("1w"), 1)


def test_candle_source_rejects_count_outside_exchange_limit() -> None:
    source = RestUpbitCandleSource(base_url=_BASE_URL, http_cfg=_HTTP_CFG, http=_FakeHttp([]))

    with pytest.raises(ValueError):
        source.fetch_bars(InstrumentId.parse("KRW-BTC"), Timeframe("1m"), 201)
