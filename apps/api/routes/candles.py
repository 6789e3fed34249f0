"""
Candle timeline API routes for the selected chart.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from apps.api.common import source_error_as_api_error
from apps.api.dto import (
    CandleBackfillResponse,
    CandleTimelineResponse,
    build_candle_backfill_response,
    build_candle_timeline_response,
)
from marketdesk.contexts.market_data.application.services import (
    CandleStore,
    ChartSession,
    TimelineState,
)
from marketdesk.contexts.market_data.domain.errors import SourceError
from marketdesk.platform.errors import MarketDeskError
from marketdesk.shared_kernel.primitives import InstrumentId, Timeframe


def build_candles_router(
    *,
    session: ChartSession,
    store: CandleStore,
    default_timeframe: Timeframe,
) -> APIRouter:
    """
    Build candle timeline router.

    Args:
        session: Selected-chart session; reading a timeline selects it.
        store: Candle store holding the timelines.
        default_timeframe: Timeframe used when the query omits one.
    Returns:
        APIRouter: Router with `GET /candles/{market}` and `POST /candles/{market}/backfill`.
    Assumptions:
        One chart is selected at a time: reading another market or timeframe discards the
        previous timeline.
    Raises:
        ValueError: If one of required dependencies is missing.
    Side Effects:
        None.
    """
    if session is None:  # type: ignore[truthy-bool]
        raise ValueError("build_candles_router requires session")
    if store is None:  # type: ignore[truthy-bool]
        raise ValueError("build_candles_router requires store")

    router = APIRouter(tags=["candles"])

    @router.get("/candles/{market}", response_model=CandleTimelineResponse)
    async def get_candles(
        market: str,
        timeframe: str | None = Query(default=None),
    ) -> CandleTimelineResponse:
        """
        Select the chart and return its timeline, loading it on first access.

        Args:
            market: Market code, e.g. `KRW-BTC`.
            timeframe: Timeframe code, e.g. `1m`, `60m`, `1d`.
        Returns:
            CandleTimelineResponse: Bars ascending by canonical timestamp.
        Assumptions:
            Re-reading the selected chart does not refetch; the live poll keeps it fresh.
        Raises:
            MarketDeskError: `validation_error` for bad market/timeframe, source error
            kinds when the initial load fails.
        Side Effects:
            May discard the previously selected timeline and fetch one candle page.
        """
        instrument_id, effective_timeframe = _parse_key(market, timeframe, default_timeframe)
        try:
            timeline = await session.select(instrument_id, effective_timeframe)
        except SourceError as error:
            raise source_error_as_api_error(error) from error
        state = store.state(instrument_id, effective_timeframe)
        return build_candle_timeline_response(timeline=timeline, state=state)

    @router.post("/candles/{market}/backfill", response_model=CandleBackfillResponse)
    async def post_candles_backfill(
        market: str,
        timeframe: str | None = Query(default=None),
    ) -> CandleBackfillResponse:
        """
        Fetch and merge one page of older bars into a loaded timeline.

        Args:
            market: Market code.
            timeframe: Timeframe code.
        Returns:
            CandleBackfillResponse: Backfill outcome and the resulting timeline extent.
        Assumptions:
            A request while a backfill is in flight reports `skipped`.
        Raises:
            MarketDeskError: `validation_error` for bad input, `conflict` when the
            timeline is not loaded.
        Side Effects:
            One candle page fetch.
        """
        instrument_id, effective_timeframe = _parse_key(market, timeframe, default_timeframe)
        if store.state(instrument_id, effective_timeframe) is TimelineState.EMPTY:
            raise MarketDeskError(
                code="conflict",
                message="Candle timeline is not loaded",
                details={"market": str(instrument_id), "timeframe": str(effective_timeframe)},
            )
        outcome = await store.request_backfill(instrument_id, effective_timeframe)
        timeline = store.current(instrument_id, effective_timeframe)
        return build_candle_backfill_response(timeline=timeline, outcome=outcome)

    return router


def _parse_key(
    market: str,
    timeframe: str | None,
    default_timeframe: Timeframe,
) -> tuple[InstrumentId, Timeframe]:
    errors: list[dict[str, str]] = []
    instrument_id: InstrumentId | None = None
    effective_timeframe: Timeframe | None = default_timeframe

    try:
        instrument_id = InstrumentId.parse(market)
    except ValueError as error:
        errors.append({"path": "path.market", "code": "invalid_market", "message": str(error)})

    if timeframe is not None:
        try:
            effective_timeframe = Timeframe(timeframe)
        except ValueError as error:
            effective_timeframe = None
            errors.append(
                {"path": "query.timeframe", "code": "invalid_timeframe", "message": str(error)}
            )

    if errors or instrument_id is None or effective_timeframe is None:
        raise MarketDeskError(
            code="validation_error",
            message="Validation failed",
            details={"errors": errors},
        )
    return instrument_id, effective_timeframe


__all__ = ["build_candles_router"]
