from __future__ import annotations

from typing import Protocol, Sequence

from marketdesk.contexts.market_data.application.dto import Instrument


class InstrumentCatalogSource(Protocol):
    """
    Source port returning every tradable instrument of the local exchange.

    Contract:
    - fetch_all() returns the full catalog, not filtered by quote market.
    - raises SourceError subclasses on failure.
    """

    def fetch_all(self) -> Sequence[Instrument]:
        ...
