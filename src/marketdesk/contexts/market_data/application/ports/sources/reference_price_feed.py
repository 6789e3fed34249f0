from __future__ import annotations

from typing import Mapping, Protocol


class ReferencePriceFeed(Protocol):
    """
    Source port returning last prices on the reference (foreign) exchange.

    Contract:
    - fetch_all() returns `{"<BASE><QUOTE>": price}` for every listed pair,
      e.g. `{"BTCUSDT": 97000.0}`.
    - the feed fails open: transport failures yield `{}` instead of raising.
    """

    def fetch_all(self) -> Mapping[str, float]:
        ...
