from .rest_candle_source import RestUpbitCandleSource
from .rest_instrument_catalog_source import RestUpbitInstrumentCatalogSource
from .rest_ticker_feed import RestUpbitTickerFeed

__all__ = [
    "RestUpbitCandleSource",
    "RestUpbitInstrumentCatalogSource",
    "RestUpbitTickerFeed",
]
