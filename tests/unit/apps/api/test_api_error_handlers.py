from __future__ import annotations

from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from apps.api.common import register_api_error_handlers, source_error_as_api_error
from marketdesk.contexts.market_data.domain.errors import (
    MalformedResponseError,
    SourceUnavailableError,
)
from marketdesk.platform.errors import MarketDeskError


def _app() -> FastAPI:
    app = FastAPI()
    register_api_error_handlers(app=app)

    @app.get("/conflict")
    def conflict() -> None:
        raise MarketDeskError(code="conflict", message="Conflict happened", details={"id": "abc"})

    @app.get("/unavailable")
    def unavailable() -> None:
        raise SourceUnavailableError("upstream down", source="ticker")

    @app.get("/page")
    def page(number: int = Query(ge=1)) -> dict[str, int]:
        return {"number": number}

    return app


def test_market_desk_error_maps_code_to_http_status_and_payload() -> None:
    """
    Verify MarketDeskError is converted into deterministic API payload and status mapping.

    Args:
        None.
    Returns:
        None.
    Assumptions:
        Conflict code must be mapped to HTTP 409 by shared API error handler.
    Raises:
        AssertionError: If payload shape or HTTP status mapping is broken.
    Side Effects:
        None.
    """
    response = TestClient(_app()).get("/conflict")

    assert response.status_code == 409
    assert response.json() == {
        "error": {
            "code": "conflict",
            "message": "Conflict happened",
            "details": {"id": "abc"},
        }
    }


def test_unhandled_source_error_maps_to_its_kind() -> None:
    response = TestClient(_app()).get("/unavailable")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "source_unavailable"
    assert response.json()["error"]["details"] == {
        "kind": "source_unavailable",
        "source": "ticker",
    }


def test_source_error_as_api_error_keeps_source_name_only() -> None:
    api_error = source_error_as_api_error(MalformedResponseError("bad body <html>", source="rate"))

    assert api_error.code == "malformed_response"
    assert api_error.details == {"kind": "malformed_response", "source": "rate"}


def test_request_validation_error_returns_canonical_payload() -> None:
    response = TestClient(_app()).get("/page", params={"number": 0})

    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["message"] == "Validation failed"
    assert [item["path"] for item in body["error"]["details"]["errors"]] == ["query.number"]


def test_missing_query_value_is_reported_as_required() -> None:
    response = TestClient(_app()).get("/page")

    assert response.status_code == 422
    assert response.json()["error"]["details"]["errors"] == [
        {"path": "query.number", "code": "required", "message": "Field required"}
    ]
