from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """
    Error kinds carried alongside snapshots so consumers can tell failure modes apart.

    - SOURCE_UNAVAILABLE: transport/HTTP failure; data present (if any) is stale.
    - MALFORMED_RESPONSE: payload did not match the expected schema.
    - STALE_DATA: not a hard error; last-known value served past its refresh interval.
    - CONFIGURATION: the request will never succeed as configured.
    """

    SOURCE_UNAVAILABLE = "source_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    STALE_DATA = "stale_data"
    CONFIGURATION = "configuration"


class SourceError(RuntimeError):
    """
    Base error raised by market data source adapters.

    Related:
      - src/marketdesk/contexts/market_data/adapters/outbound/clients/common_http/http_client.py
      - src/marketdesk/contexts/market_data/application/services/source_poller.py
    """

    kind: ErrorKind = ErrorKind.SOURCE_UNAVAILABLE

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class SourceUnavailableError(SourceError):
    """Transport error, timeout, 5xx or rate limiting that survived all retries."""

    kind = ErrorKind.SOURCE_UNAVAILABLE


class MalformedResponseError(SourceError):
    """Response body is not valid JSON or does not match the expected shape."""

    kind = ErrorKind.MALFORMED_RESPONSE


class SourceConfigurationError(SourceError):
    """Non-retryable rejection (4xx) of a request: retrying will not help."""

    kind = ErrorKind.CONFIGURATION


def error_kind_of(exc: BaseException) -> ErrorKind:
    """
    Map any exception raised by a source call onto an ErrorKind.

    Unknown exceptions are treated as transport failures so that an unexpected adapter
    bug degrades to stale data instead of crashing a poll loop.
    """
    if isinstance(exc, SourceError):
        return exc.kind
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return ErrorKind.MALFORMED_RESPONSE
    return ErrorKind.SOURCE_UNAVAILABLE
