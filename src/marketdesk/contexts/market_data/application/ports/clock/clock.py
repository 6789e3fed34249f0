from __future__ import annotations

from typing import Protocol

from marketdesk.shared_kernel.primitives import UtcTimestamp


class Clock(Protocol):
    """
    Clock — source of the current UTC time for the application layer.

    Contract:
    - now() -> UtcTimestamp
    """

    def now(self) -> UtcTimestamp:
        ...
