from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpClient
from marketdesk.contexts.market_data.adapters.outbound.clients.upbit.payload import (
    get_list,
    require_mapping,
    require_str,
)
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import (
    HttpConfig,
    SourceConfig,
)
from marketdesk.contexts.market_data.application.dto import Instrument
from marketdesk.contexts.market_data.application.ports.sources import InstrumentCatalogSource
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError
from marketdesk.shared_kernel.primitives import InstrumentId

log = logging.getLogger(__name__)

_SOURCE = "catalog"


@dataclass(frozen=True, slots=True)
class RestUpbitInstrumentCatalogSource(InstrumentCatalogSource):
    """
    Instrument catalog over Upbit `GET /v1/market/all?isDetails=false`.

    Parameters:
    - cfg: catalog source configuration (base URL).
    - http_cfg: timeout/retry settings.
    - http: HTTP client with retry/timeout support.

    Assumptions/Invariants:
    - Rows with an unparseable market code are skipped and logged.
    """

    cfg: SourceConfig
    http_cfg: HttpConfig
    http: HttpClient

    def __post_init__(self) -> None:
        if self.cfg is None:  # type: ignore[truthy-bool]
            raise ValueError("RestUpbitInstrumentCatalogSource requires cfg")
        if self.http is None:  # type: ignore[truthy-bool]
            raise ValueError("RestUpbitInstrumentCatalogSource requires http")

    def fetch_all(self) -> Sequence[Instrument]:
        """
        Fetch every listed market.

        Returns:
        - Instruments in exchange order.

        Errors/Exceptions:
        - Raises `MalformedResponseError` on unexpected payload shape.
        - Propagates `SourceError` from the HTTP client.

        Side effects:
        - Performs one HTTP GET request.
        """
        rows = get_list(
            self.http,
            self.http_cfg,
            url=self.cfg.base_url.rstrip("/") + "/v1/market/all",
            params={"isDetails": "false"},
            source=_SOURCE,
        )

        out: list[Instrument] = []
        for raw in rows:
            item = require_mapping(raw, source=_SOURCE)
            market = require_str(item, "market", source=_SOURCE)
            try:
                instrument_id = InstrumentId.parse(market)
            except ValueError:
                log.warning("skipping catalog row with invalid market code %r", market)
                continue
            out.append(
                Instrument(
                    instrument_id=instrument_id,
                    local_name=_optional_str(item.get("korean_name")),
                    reference_name=_optional_str(item.get("english_name")),
                )
            )

        if rows and not out:
            raise MalformedResponseError("Upbit market list contained no valid rows", source=_SOURCE)
        return out


def _optional_str(value: object) -> str:
    if isinstance(value, str):
        return value
    return ""
