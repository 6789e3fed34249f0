from .rest_rate_source import RestExchangeRateSource

__all__ = ["RestExchangeRateSource"]
