from __future__ import annotations

from typing import Protocol, Sequence

from marketdesk.contexts.market_data.application.dto import TickerSnapshot
from marketdesk.shared_kernel.primitives import InstrumentId


class TickerFeed(Protocol):
    """
    Source port returning current ticker snapshots for a set of instruments.

    Contract:
    - fetch(instrument_ids) returns at most one snapshot per requested id.
    - unknown ids may be silently omitted by the exchange.
    - raises SourceError subclasses on failure.
    """

    def fetch(self, instrument_ids: Sequence[InstrumentId]) -> Sequence[TickerSnapshot]:
        """
        Fetch ticker snapshots.

        Parameters:
        - instrument_ids: ids to request; an empty sequence returns an empty result
          without a network call.

        Returns:
        - Snapshots in exchange order.
        """
        ...
