from .rest_reference_price_feed import RestBinanceReferencePriceFeed

__all__ = ["RestBinanceReferencePriceFeed"]
