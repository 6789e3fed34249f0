from __future__ import annotations

from dataclasses import dataclass

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpClient
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import (
    HttpConfig,
    RateSourceConfig,
)
from marketdesk.contexts.market_data.application.ports.sources import RateSource
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError

_SOURCE = "rate"


@dataclass(frozen=True, slots=True)
class RestExchangeRateSource(RateSource):
    """
    Conversion rate over open.er-api.com `GET /v6/latest/{base}`.

    Parameters:
    - cfg: rate source configuration (base URL, base and target currency).
    - http_cfg: timeout/retry settings.
    - http: HTTP client with retry/timeout support.

    Assumptions/Invariants:
    - Returns `rates[target]`: target-currency units per one base-currency unit.
    """

    cfg: RateSourceConfig
    http_cfg: HttpConfig
    http: HttpClient

    def __post_init__(self) -> None:
        if self.cfg is None:  # type: ignore[truthy-bool]
            raise ValueError("RestExchangeRateSource requires cfg")
        if self.http is None:  # type: ignore[truthy-bool]
            raise ValueError("RestExchangeRateSource requires http")

    def fetch(self) -> float:
        base = self.cfg.base_currency.strip().upper()
        target = self.cfg.target_currency.strip().upper()
        response = self.http.get_json(
            url=f"{self.cfg.base_url.rstrip('/')}/v6/latest/{base}",
            params={},
            timeout_s=self.http_cfg.timeout_s,
            retries=self.http_cfg.retries,
            backoff_base_s=self.http_cfg.backoff.base_s,
            backoff_max_s=self.http_cfg.backoff.max_s,
            backoff_jitter_s=self.http_cfg.backoff.jitter_s,
        )

        body = response.body
        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"Unexpected exchange rate payload type: {type(body).__name__}",
                source=_SOURCE,
            )
        result = body.get("result")
        if result not in (None, "success"):
            raise MalformedResponseError(f"exchange rate result={result!r}", source=_SOURCE)

        rates = body.get("rates")
        if not isinstance(rates, dict):
            raise MalformedResponseError("exchange rate payload is missing rates", source=_SOURCE)

        value = rates.get(target)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise MalformedResponseError(
                f"exchange rate payload has no positive rate for {target}: {value!r}",
                source=_SOURCE,
            )
        return float(value)
