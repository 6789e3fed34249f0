from .runtime_config import (
    BackoffConfig,
    BoardConfig,
    CandlesConfig,
    HttpConfig,
    MarketDeskRuntimeConfig,
    MetricsConfig,
    RateSourceConfig,
    SourceConfig,
    SourcesConfig,
    load_marketdesk_runtime_config,
    parse_marketdesk_runtime_config,
)

__all__ = [
    "BackoffConfig",
    "BoardConfig",
    "CandlesConfig",
    "HttpConfig",
    "MarketDeskRuntimeConfig",
    "MetricsConfig",
    "RateSourceConfig",
    "SourceConfig",
    "SourcesConfig",
    "load_marketdesk_runtime_config",
    "parse_marketdesk_runtime_config",
]
