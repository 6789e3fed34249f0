from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpClient
from marketdesk.contexts.market_data.adapters.outbound.clients.upbit.payload import (
    get_list,
    require_float,
    require_mapping,
    require_str,
)
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import (
    HttpConfig,
    SourceConfig,
)
from marketdesk.contexts.market_data.application.dto import ChangeDirection, TickerSnapshot
from marketdesk.contexts.market_data.application.ports.sources import TickerFeed
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError
from marketdesk.shared_kernel.primitives import InstrumentId, UtcTimestamp

_SOURCE = "ticker"


@dataclass(frozen=True, slots=True)
class RestUpbitTickerFeed(TickerFeed):
    """
    Ticker feed over Upbit `GET /v1/ticker?markets=a,b,c`.

    Parameters:
    - cfg: ticker source configuration (base URL).
    - http_cfg: timeout/retry settings.
    - http: HTTP client with retry/timeout support.

    Assumptions/Invariants:
    - Market codes are sent comma-joined in one request.
    - `timestamp` (epoch ms) is the snapshot time.
    """

    cfg: SourceConfig
    http_cfg: HttpConfig
    http: HttpClient

    def __post_init__(self) -> None:
        if self.cfg is None:  # type: ignore[truthy-bool]
            raise ValueError("RestUpbitTickerFeed requires cfg")
        if self.http is None:  # type: ignore[truthy-bool]
            raise ValueError("RestUpbitTickerFeed requires http")

    def fetch(self, instrument_ids: Sequence[InstrumentId]) -> Sequence[TickerSnapshot]:
        if not instrument_ids:
            return []

        rows = get_list(
            self.http,
            self.http_cfg,
            url=self.cfg.base_url.rstrip("/") + "/v1/ticker",
            params={"markets": ",".join(str(item) for item in instrument_ids)},
            source=_SOURCE,
        )
        return [_map_ticker_row(require_mapping(raw, source=_SOURCE)) for raw in rows]


def _map_ticker_row(item: Mapping[str, Any]) -> TickerSnapshot:
    market = require_str(item, "market", source=_SOURCE)
    change_text = require_str(item, "change", source=_SOURCE)
    try:
        instrument_id = InstrumentId.parse(market)
        change = ChangeDirection(change_text.upper())
        return TickerSnapshot(
            instrument_id=instrument_id,
            trade_price=require_float(item, "trade_price", source=_SOURCE),
            opening_price=require_float(item, "opening_price", source=_SOURCE),
            high_price=require_float(item, "high_price", source=_SOURCE),
            low_price=require_float(item, "low_price", source=_SOURCE),
            prev_closing_price=require_float(item, "prev_closing_price", source=_SOURCE),
            change=change,
            signed_change_price=require_float(item, "signed_change_price", source=_SOURCE),
            signed_change_rate=require_float(item, "signed_change_rate", source=_SOURCE),
            acc_trade_price_24h=require_float(item, "acc_trade_price_24h", source=_SOURCE),
            acc_trade_volume_24h=require_float(item, "acc_trade_volume_24h", source=_SOURCE),
            timestamp=UtcTimestamp.from_epoch_ms(int(require_float(item, "timestamp", source=_SOURCE))),  # noqa: E501
        )
    except ValueError as e:
        raise MalformedResponseError(f"Invalid Upbit ticker row for {market}: {e}", source=_SOURCE) from e  # noqa: E501
