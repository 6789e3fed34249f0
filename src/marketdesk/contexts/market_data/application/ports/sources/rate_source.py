from __future__ import annotations

from typing import Protocol


class RateSource(Protocol):
    """
    Source port returning the currency conversion rate.

    Contract:
    - fetch() returns local-currency units per one quote-currency unit (KRW per USD).
    - the value is strictly positive.
    - raises SourceError subclasses on failure.
    """

    def fetch(self) -> float:
        ...
