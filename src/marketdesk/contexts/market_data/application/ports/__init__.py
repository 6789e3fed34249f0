"""
Application layer ports for the market_data bounded context.

Ports define external dependencies used by services: market data sources, the clock and
the chart renderer.
"""

from .clock import Clock
from .render import ChartViewport
from .sources import (
    CandleSource,
    InstrumentCatalogSource,
    RateSource,
    ReferencePriceFeed,
    TickerFeed,
)

__all__ = [
    "CandleSource",
    "ChartViewport",
    "Clock",
    "InstrumentCatalogSource",
    "RateSource",
    "ReferencePriceFeed",
    "TickerFeed",
]
