from __future__ import annotations

from typing import Any, Mapping

import pytest

from marketdesk.contexts.market_data.adapters.outbound.clients.binance import (
    RestBinanceReferencePriceFeed,
)
from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpResponse
from marketdesk.contexts.market_data.adapters.outbound.clients.exchange_rate import (
    RestExchangeRateSource,
)
from marketdesk.contexts.market_data.adapters.outbound.config import (
    BackoffConfig,
    HttpConfig,
    RateSourceConfig,
    SourceConfig,
)
from marketdesk.contexts.market_data.domain.errors import (
    MalformedResponseError,
    SourceUnavailableError,
)

_HTTP_CFG = HttpConfig(
    timeout_s=5.0,
    retries=0,
    backoff=BackoffConfig(base_s=0.1, max_s=1.0, jitter_s=0.0),
)


class _FakeHttp:
    def __init__(self, body: Any = None, *, error: Exception | None = None) -> None:
        self._body = body
        self._error = error
        self.urls: list[str] = []

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
        self.urls.append(url)
        if self._error is not None:
            raise self._error
        return HttpResponse(status_code=200, headers={}, body=self._body)


def _reference_feed(http: _FakeHttp) -> RestBinanceReferencePriceFeed:
    return RestBinanceReferencePriceFeed(
        cfg=SourceConfig(name="reference", base_url="https://api.binance.test", interval_s=3.0),
        http_cfg=_HTTP_CFG,
        http=http,
    )


def _rate_source(http: _FakeHttp) -> RestExchangeRateSource:
    return RestExchangeRateSource(
        cfg=RateSourceConfig(
            base_url="https://open.er-api.test",
            interval_s=60.0,
            base_currency="usd",
            target_currency="krw",
        ),
        http_cfg=_HTTP_CFG,
        http=http,
    )


def test_reference_feed_parses_string_prices_and_skips_bad_rows() -> None:
    http = _FakeHttp(
        [
            {"symbol": "btcusdt", "price": "97000.10"},
            {"symbol": "ETHUSDT", "price": 3200},
            {"symbol": "BADUSDT", "price": "n/a"},
            "garbage",
        ]
    )

    prices = _reference_feed(http).fetch_all()

    assert prices == {"BTCUSDT": 97000.10, "ETHUSDT": 3200.0}
    assert http.urls == ["https://api.binance.test/api/v3/ticker/price"]


def test_reference_feed_fails_open_to_empty_mapping() -> None:
    assert _reference_feed(_FakeHttp(error=SourceUnavailableError("down"))).fetch_all() == {}
    assert _reference_feed(_FakeHttp({"code": -1})).fetch_all() == {}


def test_rate_source_reads_target_currency_rate() -> None:
    http = _FakeHttp({"result": "success", "rates": {"KRW": 1385.5, "USD": 1}})

    assert _rate_source(http).fetch() == 1385.5
    assert http.urls == ["https://open.er-api.test/v6/latest/USD"]


@pytest.mark.parametrize(
    "body",
    [
        {"result": "error", "error-type": "unsupported-code"},
        {"result": "success", "rates": {"USD": 1}},
        {"result": "success", "rates": {"KRW": 0}},
        ["not", "a", "mapping"],
    ],
)
def test_rate_source_rejects_unusable_payloads(body: Any) -> None:
    with pytest.raises(MalformedResponseError):
        _rate_source(_FakeHttp(body)).fetch()
