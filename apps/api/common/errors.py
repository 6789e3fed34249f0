"""
Shared API error handlers for the MarketDeskError contract and deterministic 422 payloads.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from marketdesk.contexts.market_data.domain.errors import ErrorKind, SourceError
from marketdesk.platform.errors import MarketDeskError

_STATUS_BY_CODE: Mapping[str, int] = {
    "validation_error": 422,
    "not_found": 404,
    "conflict": 409,
    ErrorKind.SOURCE_UNAVAILABLE.value: 503,
    ErrorKind.STALE_DATA.value: 503,
    ErrorKind.MALFORMED_RESPONSE.value: 502,
    ErrorKind.CONFIGURATION.value: 502,
    "unexpected_error": 500,
}


def register_api_error_handlers(*, app: FastAPI) -> None:
    """
    Register global API handlers for MarketDeskError, SourceError and validation errors.

    Args:
        app: FastAPI application instance.
    Returns:
        None.
    Assumptions:
        Handlers are installed once during application startup.
    Raises:
        ValueError: If `app` dependency is missing.
    Side Effects:
        Mutates FastAPI exception-handler registry.
    """
    if app is None:  # type: ignore[truthy-bool]
        raise ValueError("register_api_error_handlers requires app")

    app.add_exception_handler(MarketDeskError, market_desk_error_handler)
    app.add_exception_handler(SourceError, source_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


def market_desk_error_handler(_request: Request, error: Exception) -> JSONResponse:
    """
    Convert MarketDeskError into deterministic JSON response payload.

    Args:
        _request: Starlette request object (unused).
        error: Raised MarketDeskError instance.
    Returns:
        JSONResponse: Response with contract payload `{"error": ...}`.
    Assumptions:
        Status code is derived from MarketDeskError.code via a stable mapping table.
    Raises:
        None.
    Side Effects:
        None.
    """
    api_error = cast(MarketDeskError, error)
    status_code = _STATUS_BY_CODE.get(api_error.code, 500)
    return JSONResponse(status_code=status_code, content=api_error.to_payload())


def source_error_handler(request: Request, error: Exception) -> JSONResponse:
    """Convert an unhandled SourceError into the MarketDeskError payload of its kind."""
    return market_desk_error_handler(request, source_error_as_api_error(cast(SourceError, error)))


def source_error_as_api_error(error: SourceError) -> MarketDeskError:
    """
    Map a source failure onto the API error contract.

    Args:
        error: Source adapter exception.
    Returns:
        MarketDeskError: Error whose code is the source error kind.
    Assumptions:
        Upstream details are not leaked beyond the source name.
    Raises:
        None.
    Side Effects:
        None.
    """
    details: dict[str, Any] = {"kind": error.kind.value}
    if error.source is not None:
        details["source"] = error.source
    return MarketDeskError(
        code=error.kind.value,
        message="Market data source request failed",
        details=details,
    )


def request_validation_error_handler(_request: Request, error: Exception) -> JSONResponse:
    """
    Convert FastAPI RequestValidationError to the canonical `validation_error` payload.

    Args:
        _request: Starlette request object (unused).
        error: Raised validation exception from FastAPI/Pydantic.
    Returns:
        JSONResponse: HTTP 422 payload with deterministically sorted `details.errors` list.
    Assumptions:
        Validation errors include `loc`, `type`, and `msg` attributes.
    Raises:
        None.
    Side Effects:
        None.
    """
    validation_error = cast(RequestValidationError, error)
    api_error = MarketDeskError(
        code="validation_error",
        message="Validation failed",
        details={"errors": _sorted_validation_errors(raw_errors=validation_error.errors())},
    )
    return market_desk_error_handler(_request, api_error)


def _sorted_validation_errors(*, raw_errors: Any) -> list[dict[str, str]]:
    """
    Convert raw validation errors into a list sorted by path, code, and message.

    Args:
        raw_errors: Raw iterable from FastAPI validation subsystem.
    Returns:
        list[dict[str, str]]: Sorted normalized validation items.
    Assumptions:
        Unknown raw shapes are stringified.
    Raises:
        None.
    Side Effects:
        None.
    """
    if not isinstance(raw_errors, Sequence) or isinstance(raw_errors, (str, bytes, bytearray)):
        return []

    normalized_items: list[dict[str, str]] = []
    for raw_error in raw_errors:
        if not isinstance(raw_error, Mapping):
            normalized_items.append(
                {"path": "unknown", "code": "validation_error", "message": str(raw_error)}
            )
            continue
        normalized_items.append(
            {
                "path": _normalize_error_path(loc=raw_error.get("loc")),
                "code": _normalize_error_code(raw_type=raw_error.get("type")),
                "message": str(raw_error.get("msg", "Validation error")),
            }
        )

    return sorted(
        normalized_items,
        key=lambda item: (item["path"], item["code"], item["message"]),
    )


def _normalize_error_path(*, loc: Any) -> str:
    if isinstance(loc, Sequence) and not isinstance(loc, (str, bytes, bytearray)):
        path_parts = [str(part) for part in loc]
        if path_parts:
            return ".".join(path_parts)
    if loc is None:
        return "unknown"
    return str(loc)


def _normalize_error_code(*, raw_type: Any) -> str:
    if raw_type is None:
        return "validation_error"
    normalized = str(raw_type).strip().lower()
    if not normalized:
        return "validation_error"
    if normalized == "missing" or normalized.endswith(".missing"):
        return "required"
    return normalized
