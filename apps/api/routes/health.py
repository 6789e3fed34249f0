"""
Liveness/readiness API route.
"""

from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter
from pydantic import BaseModel

from marketdesk.contexts.market_data.application.services import (
    MarketBoardAggregator,
    SourcePoller,
)


class SourceHealthResponse(BaseModel):
    name: str
    has_result: bool
    last_error: str | None


class HealthResponse(BaseModel):
    status: str
    board_loading: bool
    board_error: str | None
    stale_sources: list[str]
    sources: list[SourceHealthResponse]


def build_health_router(
    *,
    aggregator: MarketBoardAggregator,
    pollers: Sequence[SourcePoller],
) -> APIRouter:
    """
    Build `GET /health`.

    Status is `ok` when the board has data and no mandatory source is failing,
    `degraded` otherwise. The endpoint always answers 200.
    """
    if aggregator is None:  # type: ignore[truthy-bool]
        raise ValueError("build_health_router requires aggregator")

    router = APIRouter(tags=["health"])
    registered = tuple(pollers)

    @router.get("/health", response_model=HealthResponse)
    def get_health() -> HealthResponse:
        snapshot = aggregator.current_snapshot()
        healthy = not snapshot.is_loading and snapshot.error is None
        return HealthResponse(
            status="ok" if healthy else "degraded",
            board_loading=snapshot.is_loading,
            board_error=snapshot.error.value if snapshot.error is not None else None,
            stale_sources=sorted(snapshot.stale_sources),
            sources=[
                SourceHealthResponse(
                    name=poller.name,
                    has_result=poller.has_result,
                    last_error=poller.last_error.value if poller.last_error is not None else None,
                )
                for poller in registered
            ],
        )

    return router


__all__ = ["build_health_router"]
