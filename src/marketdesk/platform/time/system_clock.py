from __future__ import annotations

from datetime import datetime, timezone

from marketdesk.contexts.market_data.application.ports.clock.clock import Clock
from marketdesk.shared_kernel.primitives import UtcTimestamp


class SystemClock(Clock):
    """
    SystemClock — platform Clock implementation backed by the system time.

    Returns UtcTimestamp(datetime.now(timezone.utc)).
    """

    def now(self) -> UtcTimestamp:
        return UtcTimestamp(datetime.now(timezone.utc))
