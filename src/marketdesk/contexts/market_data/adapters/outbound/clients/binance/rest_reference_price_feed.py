from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpClient
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import (
    HttpConfig,
    SourceConfig,
)
from marketdesk.contexts.market_data.application.ports.sources import ReferencePriceFeed
from marketdesk.contexts.market_data.domain.errors import SourceError

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RestBinanceReferencePriceFeed(ReferencePriceFeed):
    """
    Reference prices over Binance `GET /api/v3/ticker/price`.

    Parameters:
    - cfg: reference source configuration (base URL).
    - http_cfg: timeout/retry settings.
    - http: HTTP client with retry/timeout support.

    Assumptions/Invariants:
    - The feed fails open: any source failure is logged and yields `{}`.
    - Rows with a non-numeric price are skipped.
    """

    cfg: SourceConfig
    http_cfg: HttpConfig
    http: HttpClient

    def __post_init__(self) -> None:
        if self.cfg is None:  # type: ignore[truthy-bool]
            raise ValueError("RestBinanceReferencePriceFeed requires cfg")
        if self.http is None:  # type: ignore[truthy-bool]
            raise ValueError("RestBinanceReferencePriceFeed requires http")

    def fetch_all(self) -> Mapping[str, float]:
        url = self.cfg.base_url.rstrip("/") + "/api/v3/ticker/price"
        try:
            response = self.http.get_json(
                url=url,
                params={},
                timeout_s=self.http_cfg.timeout_s,
                retries=self.http_cfg.retries,
                backoff_base_s=self.http_cfg.backoff.base_s,
                backoff_max_s=self.http_cfg.backoff.max_s,
                backoff_jitter_s=self.http_cfg.backoff.jitter_s,
            )
        except SourceError as e:
            log.warning("reference price feed failed (%s): %s", e.kind.value, e)
            return {}

        body = response.body
        if not isinstance(body, list):
            log.warning("unexpected Binance ticker/price payload type: %s", type(body).__name__)
            return {}

        out: dict[str, float] = {}
        for item in body:
            if not isinstance(item, dict):
                continue
            symbol = item.get("symbol")
            if not isinstance(symbol, str) or not symbol.strip():
                continue
            price = _as_float(item.get("price"))
            if price is None:
                continue
            out[symbol.strip().upper()] = price
        return out


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
