from __future__ import annotations

from typing import Any, Mapping

from marketdesk.contexts.market_data.adapters.outbound.clients.common_http import HttpClient
from marketdesk.contexts.market_data.adapters.outbound.config.runtime_config import HttpConfig
from marketdesk.contexts.market_data.domain.errors import MalformedResponseError


def get_list(
    http: HttpClient,
    http_cfg: HttpConfig,
    *,
    url: str,
    params: Mapping[str, Any],
    source: str,
) -> list[Any]:
    """
    GET an Upbit endpoint whose body must be a JSON array.

    Errors/Exceptions:
    - Raises `MalformedResponseError` when the body is not a list.
    - Propagates `SourceError` from the HTTP client.
    """
    response = http.get_json(
        url=url,
        params=params,
        timeout_s=http_cfg.timeout_s,
        retries=http_cfg.retries,
        backoff_base_s=http_cfg.backoff.base_s,
        backoff_max_s=http_cfg.backoff.max_s,
        backoff_jitter_s=http_cfg.backoff.jitter_s,
    )
    body = response.body
    if not isinstance(body, list):
        raise MalformedResponseError(
            f"Unexpected Upbit payload type from {url}: {type(body).__name__}",
            source=source,
        )
    return body


def require_mapping(item: Any, *, source: str) -> Mapping[str, Any]:
    if not isinstance(item, dict):
        raise MalformedResponseError(
            f"Unexpected Upbit row type: {type(item).__name__}",
            source=source,
        )
    return item


def require_str(item: Mapping[str, Any], key: str, *, source: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponseError(f"Upbit row is missing string field {key!r}", source=source)
    return value


def require_float(item: Mapping[str, Any], key: str, *, source: str) -> float:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError(f"Upbit row is missing numeric field {key!r}", source=source)
    return float(value)
