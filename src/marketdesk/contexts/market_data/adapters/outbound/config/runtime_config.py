from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from marketdesk.shared_kernel.primitives import Symbol, Timeframe

_MAX_PAGE_SIZE = 200


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    base_s: float
    max_s: float
    jitter_s: float

    def __post_init__(self) -> None:
        _require_positive("http.backoff.base_s", self.base_s)
        _require_positive("http.backoff.max_s", self.max_s)
        _require_non_negative("http.backoff.jitter_s", self.jitter_s)
        if self.base_s > self.max_s:
            raise ValueError(f"http.backoff.base_s must be <= http.backoff.max_s, got {self.base_s} > {self.max_s}") # noqa: E501


@dataclass(frozen=True, slots=True)
class HttpConfig:
    timeout_s: float
    retries: int
    backoff: BackoffConfig

    def __post_init__(self) -> None:
        _require_positive("http.timeout_s", self.timeout_s)
        _require_non_negative_int("http.retries", self.retries)


@dataclass(frozen=True, slots=True)
class SourceConfig:
    name: str
    base_url: str
    interval_s: float

    def __post_init__(self) -> None:
        _require_non_empty(f"sources.{self.name}.base_url", self.base_url)
        _require_positive(f"sources.{self.name}.interval_s", self.interval_s)


@dataclass(frozen=True, slots=True)
class RateSourceConfig:
    base_url: str
    interval_s: float
    base_currency: str
    target_currency: str

    def __post_init__(self) -> None:
        _require_non_empty("sources.rate.base_url", self.base_url)
        _require_positive("sources.rate.interval_s", self.interval_s)
        _require_non_empty("sources.rate.base_currency", self.base_currency)
        _require_non_empty("sources.rate.target_currency", self.target_currency)


@dataclass(frozen=True, slots=True)
class SourcesConfig:
    catalog: SourceConfig
    ticker: SourceConfig
    reference: SourceConfig
    rate: RateSourceConfig
    candles_base_url: str

    def __post_init__(self) -> None:
        _require_non_empty("sources.candles.base_url", self.candles_base_url)


@dataclass(frozen=True, slots=True)
class BoardConfig:
    quote_market: str
    reference_quote: str
    stable_symbol: str
    fallback_rate: float | None
    symbol_map: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Symbol(self.quote_market)
        Symbol(self.reference_quote)
        Symbol(self.stable_symbol)
        if self.fallback_rate is not None:
            _require_positive("board.fallback_rate", self.fallback_rate)


@dataclass(frozen=True, slots=True)
class CandlesConfig:
    page_size: int
    live_interval_s: float
    live_page_size: int
    backfill_tolerance: float
    restore_retry_delay_ms: int
    default_timeframe: Timeframe

    def __post_init__(self) -> None:
        _require_positive_int("candles.page_size", self.page_size)
        if self.page_size > _MAX_PAGE_SIZE:
            raise ValueError(f"candles.page_size must be <= {_MAX_PAGE_SIZE}, got {self.page_size}")  # noqa: E501
        _require_positive("candles.live_interval_s", self.live_interval_s)
        _require_positive_int("candles.live_page_size", self.live_page_size)
        if self.live_page_size > _MAX_PAGE_SIZE:
            raise ValueError(f"candles.live_page_size must be <= {_MAX_PAGE_SIZE}, got {self.live_page_size}")  # noqa: E501
        _require_positive("candles.backfill_tolerance", self.backfill_tolerance)
        _require_non_negative_int("candles.restore_retry_delay_ms", self.restore_retry_delay_ms)

    @property
    def restore_retry_delay_s(self) -> float:
        return self.restore_retry_delay_ms / 1000.0


@dataclass(frozen=True, slots=True)
class MetricsConfig:
    port: int

    def __post_init__(self) -> None:
        if self.port < 0 or self.port > 65535:
            raise ValueError(f"metrics.port must be in [0, 65535], got {self.port}")

    @property
    def enabled(self) -> bool:
        return self.port > 0


@dataclass(frozen=True, slots=True)
class MarketDeskRuntimeConfig:
    version: int
    http: HttpConfig
    sources: SourcesConfig
    board: BoardConfig
    candles: CandlesConfig
    metrics: MetricsConfig


def load_marketdesk_runtime_config(path: str | Path) -> MarketDeskRuntimeConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"marketdesk config not found: {p}")

    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("marketdesk config must be a YAML mapping at top-level")
    return parse_marketdesk_runtime_config(data)


def parse_marketdesk_runtime_config(data: Mapping[str, Any]) -> MarketDeskRuntimeConfig:
    version = _get_int(data, "version", required=True)
    md = _get_mapping(data, "marketdesk", required=True)

    http_map = _get_mapping(md, "http", required=True)
    backoff_map = _get_mapping(http_map, "backoff", required=True)
    http = HttpConfig(
        timeout_s=_get_float(http_map, "timeout_s", required=True),
        retries=_get_int(http_map, "retries", required=True),
        backoff=BackoffConfig(
            base_s=_get_float(backoff_map, "base_s", required=True),
            max_s=_get_float(backoff_map, "max_s", required=True),
            jitter_s=_get_float(backoff_map, "jitter_s", required=True),
        ),
    )

    sources_map = _get_mapping(md, "sources", required=True)
    rate_map = _get_mapping(sources_map, "rate", required=True)
    candles_source_map = _get_mapping(sources_map, "candles", required=True)
    sources = SourcesConfig(
        catalog=_parse_source("catalog", _get_mapping(sources_map, "catalog", required=True)),
        ticker=_parse_source("ticker", _get_mapping(sources_map, "ticker", required=True)),
        reference=_parse_source("reference", _get_mapping(sources_map, "reference", required=True)),  # noqa: E501
        rate=RateSourceConfig(
            base_url=_get_str(rate_map, "base_url", required=True),
            interval_s=_get_float(rate_map, "interval_s", required=True),
            base_currency=_get_str(rate_map, "base_currency", required=False) or "USD",
            target_currency=_get_str(rate_map, "target_currency", required=False) or "KRW",
        ),
        candles_base_url=_get_str(candles_source_map, "base_url", required=True),
    )

    board_map = _get_mapping(md, "board", required=True)
    board = BoardConfig(
        quote_market=_get_str(board_map, "quote_market", required=False) or "KRW",
        reference_quote=_get_str(board_map, "reference_quote", required=False) or "USDT",
        stable_symbol=_get_str(board_map, "stable_symbol", required=False) or "USDT",
        fallback_rate=_get_optional_float(board_map, "fallback_rate"),
        symbol_map=_get_str_mapping(board_map, "symbol_map"),
    )

    candles_map = _get_mapping(md, "candles", required=True)
    candles = CandlesConfig(
        page_size=_get_int(candles_map, "page_size", required=True),
        live_interval_s=_get_float(candles_map, "live_interval_s", required=True),
        live_page_size=_get_int(candles_map, "live_page_size", required=True),
        backfill_tolerance=_get_float(candles_map, "backfill_tolerance", required=True),
        restore_retry_delay_ms=_get_int(candles_map, "restore_retry_delay_ms", required=True),
        default_timeframe=Timeframe(_get_str(candles_map, "default_timeframe", required=True)),
    )

    metrics_map = _get_mapping(md, "metrics", required=False)
    metrics = MetricsConfig(port=_get_int(metrics_map, "port", required=False))

    return MarketDeskRuntimeConfig(
        version=version,
        http=http,
        sources=sources,
        board=board,
        candles=candles,
        metrics=metrics,
    )


def _parse_source(name: str, m: Mapping[str, Any]) -> SourceConfig:
    return SourceConfig(
        name=name,
        base_url=_get_str(m, "base_url", required=True),
        interval_s=_get_float(m, "interval_s", required=True),
    )


def _get_mapping(d: Mapping[str, Any], key: str, *, required: bool) -> Mapping[str, Any]:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return {}
    if not isinstance(v, dict):
        raise ValueError(f"expected mapping at key '{key}', got {type(v).__name__}")
    return v


def _get_str_mapping(d: Mapping[str, Any], key: str) -> dict[str, str]:
    m = _get_mapping(d, key, required=False)
    out: dict[str, str] = {}
    for k, v in m.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError(f"expected string -> string mapping at key '{key}'")
        out[k] = v
    return out


def _get_str(d: Mapping[str, Any], key: str, *, required: bool) -> str:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return ""
    if not isinstance(v, str):
        raise ValueError(f"expected string at key '{key}', got {type(v).__name__}")
    if not v.strip():
        raise ValueError(f"key '{key}' must be non-empty")
    return v


def _get_int(d: Mapping[str, Any], key: str, *, required: bool) -> int:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return 0
    if isinstance(v, bool):
        raise ValueError(f"expected int at key '{key}', got bool")
    if not isinstance(v, int):
        raise ValueError(f"expected int at key '{key}', got {type(v).__name__}")
    return v


def _get_float(d: Mapping[str, Any], key: str, *, required: bool) -> float:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return 0.0
    if isinstance(v, bool):
        raise ValueError(f"expected float at key '{key}', got bool")
    if isinstance(v, (int, float)):
        return float(v)
    raise ValueError(f"expected float at key '{key}', got {type(v).__name__}")


def _get_optional_float(d: Mapping[str, Any], key: str) -> float | None:
    if d.get(key) is None:
        return None
    return _get_float(d, key, required=True)


def _require_non_empty(name: str, s: str) -> None:
    if not isinstance(s, str) or not s.strip():
        raise ValueError(f"{name} must be a non-empty string")


def _require_positive(name: str, x: float) -> None:
    if x <= 0:
        raise ValueError(f"{name} must be > 0, got {x}")


def _require_non_negative(name: str, x: float) -> None:
    if x < 0:
        raise ValueError(f"{name} must be >= 0, got {x}")


def _require_positive_int(name: str, x: int) -> None:
    if x <= 0:
        raise ValueError(f"{name} must be > 0, got {x}")


def _require_non_negative_int(name: str, x: int) -> None:
    if x < 0:
        raise ValueError(f"{name} must be >= 0, got {x}")
