from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import requests

from marketdesk.contexts.market_data.domain.errors import (
    MalformedResponseError,
    SourceConfigurationError,
    SourceUnavailableError,
)

log = logging.getLogger(__name__)

_RETRYABLE_STATUSES = (418, 429)


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status_code: int
    headers: Mapping[str, str]
    body: Any


class HttpClient(Protocol):
    def get_json(
        self,
        *,
        url: str,
        params: Mapping[str, Any],
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        backoff_max_s: float,
        backoff_jitter_s: float,
    ) -> HttpResponse:
        ...


class RequestsHttpClient(HttpClient):
    """
    Minimal JSON-over-HTTP client for market data sources.

    - requests.get(...)
    - retries with exponential backoff and jitter on transport errors, 418/429 and 5xx
    - other non-200 statuses fail fast with SourceConfigurationError
    - invalid JSON fails fast with MalformedResponseError
    """

    def __init__(self, *, session: requests.Session | None = None) -> None:
        self._session = session

    def get_json(
        self,
        *,
        url: str,
        params: Mapping[str, Any],
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        backoff_max_s: float,
        backoff_jitter_s: float,
    ) -> HttpResponse:
        attempt = 0
        last_reason = "no attempt made"
        last_exc: Exception | None = None

        while attempt <= retries:
            if attempt > 0:
                _sleep_backoff(
                    attempt=attempt - 1,
                    base_s=backoff_base_s,
                    max_s=backoff_max_s,
                    jitter_s=backoff_jitter_s,
                )
            attempt += 1

            try:
                r = self._get(url, params=dict(params), timeout=timeout_s)
            except requests.RequestException as e:
                last_exc = e
                last_reason = f"{type(e).__name__}: {e}"
                log.debug("GET %s failed (attempt %s): %s", url, attempt, last_reason)
                continue

            headers = {str(k): str(v) for k, v in r.headers.items()}

            # 429/418/5xx: retry
            if r.status_code in _RETRYABLE_STATUSES or (500 <= r.status_code <= 599):
                last_exc = None
                last_reason = f"HTTP {r.status_code}"
                log.debug("GET %s returned %s (attempt %s)", url, r.status_code, attempt)
                continue

            if r.status_code != 200:
                raise SourceConfigurationError(
                    f"HTTP {r.status_code} for {url} params={dict(params)} body={r.text[:500]}",
                    source=url,
                )

            try:
                body = r.json()
            except ValueError as e:
                raise MalformedResponseError(
                    f"Invalid JSON from {url} params={dict(params)}: {r.text[:500]}",
                    source=url,
                ) from e

            return HttpResponse(status_code=200, headers=headers, body=body)

        raise SourceUnavailableError(
            f"HTTP request failed after {attempt} attempts url={url} params={dict(params)}: {last_reason}",  # noqa: E501
            source=url,
        ) from last_exc

    def _get(self, url: str, *, params: dict[str, Any], timeout: float) -> requests.Response:
        if self._session is not None:
            return self._session.get(url, params=params, timeout=timeout)
        return requests.get(url, params=params, timeout=timeout)


def _sleep_backoff(*, attempt: int, base_s: float, max_s: float, jitter_s: float) -> None:
    exp = min(max_s, base_s * (2**attempt))
    jitter = random.random() * jitter_s
    time.sleep(exp + jitter)
