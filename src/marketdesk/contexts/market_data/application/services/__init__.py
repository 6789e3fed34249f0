from .candle_store import CandleStore, CandleStoreHooks, TimelineState
from .candle_timeline import CandleTimeline
from .chart_session import ChartSession, ChartSessionSettings
from .market_board_aggregator import (
    SOURCE_CATALOG,
    SOURCE_RATE,
    SOURCE_REFERENCE,
    SOURCE_TICKER,
    MarketBoardAggregator,
)
from .record_sorting import (
    PAGE_SIZES,
    RecordPage,
    SortField,
    SortOrder,
    SortSpec,
    paginate,
    sort_records,
)
from .source_poller import PollOutcome, SourcePoller, SourcePollerHooks
from .spread_calculator import converted_price, spread_percent, stable_coin_spread_percent
from .symbol_remapper import SymbolRemapper
from .viewport_controller import ViewportController

__all__ = [
    "CandleStore",
    "CandleStoreHooks",
    "CandleTimeline",
    "ChartSession",
    "ChartSessionSettings",
    "MarketBoardAggregator",
    "PAGE_SIZES",
    "PollOutcome",
    "RecordPage",
    "SOURCE_CATALOG",
    "SOURCE_RATE",
    "SOURCE_REFERENCE",
    "SOURCE_TICKER",
    "SortField",
    "SortOrder",
    "SortSpec",
    "SourcePoller",
    "SourcePollerHooks",
    "SymbolRemapper",
    "TimelineState",
    "ViewportController",
    "converted_price",
    "paginate",
    "sort_records",
    "spread_percent",
    "stable_coin_spread_percent",
]
