from .candle_source import CandleSource
from .instrument_catalog_source import InstrumentCatalogSource
from .rate_source import RateSource
from .reference_price_feed import ReferencePriceFeed
from .ticker_feed import TickerFeed

__all__ = [
    "CandleSource",
    "InstrumentCatalogSource",
    "RateSource",
    "ReferencePriceFeed",
    "TickerFeed",
]
