from .modules import (
    MarketDeskMetrics,
    MarketDeskRuntime,
    build_market_desk_runtime,
    build_market_desk_runtime_from_sources,
)

__all__ = [
    "MarketDeskMetrics",
    "MarketDeskRuntime",
    "build_market_desk_runtime",
    "build_market_desk_runtime_from_sources",
]
