from __future__ import annotations

from typing import Protocol

from marketdesk.contexts.market_data.application.dto import LogicalRange
from marketdesk.shared_kernel.primitives import TimeRange


class ChartViewport(Protocol):
    """
    Renderer port: the visible window of a rendered candle series.

    Contract:
    - visible_logical_range() -> LogicalRange | None (None when nothing is rendered)
    - visible_time_range() -> TimeRange | None
    - set_visible_time_range(range) -> bool; False when the renderer cannot apply the
      range yet (e.g. the new series is not laid out)
    - fit_content() scales the view to show the whole series
    """

    def visible_logical_range(self) -> LogicalRange | None:
        ...

    def visible_time_range(self) -> TimeRange | None:
        ...

    def set_visible_time_range(self, time_range: TimeRange) -> bool:
        ...

    def fit_content(self) -> None:
        ...
