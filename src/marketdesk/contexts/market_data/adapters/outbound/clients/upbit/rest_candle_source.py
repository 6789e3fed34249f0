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
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import HttpConfig
from marketdesk.contexts.market_data.application.ports.sources import CandleSource
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError
from marketdesk.shared_kernel.primitives import (
    CandleBar,
    InstrumentId,
    Timeframe,
    TimeframeKind,
    UtcTimestamp,
)

_SOURCE = "candles"
_MAX_COUNT = 200


@dataclass(frozen=True, slots=True)
class RestUpbitCandleSource(CandleSource):
    """
    Candle pages over Upbit candle endpoints.

    Routes:
    - minutes: GET /v1/candles/minutes/{unit}
    - days:    GET /v1/candles/days
    - weeks:   GET /v1/candles/weeks

    Parameters:
    - base_url: Upbit REST base URL.
    - http_cfg: timeout/retry settings.
    - http: HTTP client with retry/timeout support.

    Assumptions/Invariants:
    - `to` is sent as ISO-8601 UTC and is exclusive on the exchange side.
    - Canonical timestamps come from `candle_date_time_utc` (never the KST field),
      parsed as UTC and aligned to the timeframe bucket.
    """

    base_url: str
    http_cfg: HttpConfig
    http: HttpClient

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise ValueError("RestUpbitCandleSource requires base_url")
        if self.http is None:  # type: ignore[truthy-bool]
            raise ValueError("RestUpbitCandleSource requires http")

    def fetch_bars(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        count: int,
        before: UtcTimestamp | None = None,
    ) -> Sequence[CandleBar]:
        """
        Fetch one page of bars.

        Parameters:
        - instrument_id: market to fetch.
        - timeframe: bar granularity.
        - count: page size in [1, 200].
        - before: exclusive upper bound; None fetches the most recent bars.

        Returns:
        - Bars ascending by canonical timestamp.

        Errors/Exceptions:
        - Raises `ValueError` for an out-of-range count.
        - Raises `MalformedResponseError` on unexpected payload shape.
        - Propagates `SourceError` from the HTTP client.

        Side effects:
        - Performs one HTTP GET request.
        """
        if count <= 0 or count > _MAX_COUNT:
            raise ValueError(f"count must be in [1, {_MAX_COUNT}], got {count}")

        params: dict[str, Any] = {"market": str(instrument_id), "count": count}
        if before is not None:
            params["to"] = before.value.strftime("%Y-%m-%dT%H:%M:%SZ")

        rows = get_list(
            self.http,
            self.http_cfg,
            url=self.base_url.rstrip("/") + _candles_path(timeframe),
            params=params,
            source=_SOURCE,
        )

        bars = [
            _map_candle_row(require_mapping(raw, source=_SOURCE), instrument_id, timeframe)
            for raw in rows
        ]
        if before is not None:
            bars = [bar for bar in bars if bar.ts.value < before.value]
        bars.sort(key=lambda bar: bar.ts.value)
        return bars


def _candles_path(timeframe: Timeframe) -> str:
    if timeframe.kind is TimeframeKind.MINUTES:
        return f"/v1/candles/minutes/{timeframe.unit}"
    if timeframe.kind is TimeframeKind.DAYS:
        return "/v1/candles/days"
    return "/v1/candles/weeks"


def _map_candle_row(
    item: Mapping[str, Any],
    instrument_id: InstrumentId,
    timeframe: Timeframe,
) -> CandleBar:
    market = require_str(item, "market", source=_SOURCE)
    if market != str(instrument_id):
        raise MalformedResponseError(
            f"Upbit candle row for {market} in page of {instrument_id}",
            source=_SOURCE,
        )
    utc_text = require_str(item, "candle_date_time_utc", source=_SOURCE)
    try:
        ts = timeframe.align(UtcTimestamp.from_utc_iso(utc_text))
        return CandleBar(
            instrument_id=instrument_id,
            ts=ts,
            open=require_float(item, "opening_price", source=_SOURCE),
            high=require_float(item, "high_price", source=_SOURCE),
            low=require_float(item, "low_price", source=_SOURCE),
            close=require_float(item, "trade_price", source=_SOURCE),
            acc_trade_price=require_float(item, "candle_acc_trade_price", source=_SOURCE),
            acc_trade_volume=require_float(item, "candle_acc_trade_volume", source=_SOURCE),
        )
    except ValueError as e:
        raise MalformedResponseError(f"Invalid Upbit candle row {utc_text}: {e}", source=_SOURCE) from e  # noqa: E501
