"""
Pydantic API models and converters for candle timeline endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel

from marketdesk.contexts.market_data.application.dto import BackfillOutcome
from marketdesk.contexts.market_data.application.services import CandleTimeline, TimelineState


class CandleBarResponse(BaseModel):
    ts: str
    open: float
    high: float
    low: float
    close: float
    acc_trade_price: float
    acc_trade_volume: float


class CandleTimelineResponse(BaseModel):
    """
    API response wrapper for `GET /candles/{market}`.
    """

    market: str
    timeframe: str
    state: str
    bars: list[CandleBarResponse]


class CandleBackfillResponse(BaseModel):
    """
    API response wrapper for `POST /candles/{market}/backfill`.
    """

    market: str
    timeframe: str
    outcome: str
    bars_total: int
    oldest_ts: str | None


def build_candle_timeline_response(
    *,
    timeline: CandleTimeline,
    state: TimelineState,
) -> CandleTimelineResponse:
    """
    Convert a candle timeline into API response payload.

    Parameters:
    - timeline: immutable timeline snapshot.
    - state: store state of the timeline key.

    Returns:
    - `CandleTimelineResponse` with bars ascending by timestamp.

    Assumptions/Invariants:
    - Timeline bars are already strictly increasing.

    Errors/Exceptions:
    - None.

    Side effects:
    - None.
    """
    return CandleTimelineResponse(
        market=str(timeline.key.instrument_id),
        timeframe=str(timeline.key.timeframe),
        state=state.value,
        bars=[
            CandleBarResponse(
                ts=str(bar.ts),
                open=bar.open,
                high=bar.high,
                low=bar.low,
                close=bar.close,
                acc_trade_price=bar.acc_trade_price,
                acc_trade_volume=bar.acc_trade_volume,
            )
            for bar in timeline
        ],
    )


def build_candle_backfill_response(
    *,
    timeline: CandleTimeline,
    outcome: BackfillOutcome,
) -> CandleBackfillResponse:
    oldest = timeline.oldest
    return CandleBackfillResponse(
        market=str(timeline.key.instrument_id),
        timeframe=str(timeline.key.timeframe),
        outcome=outcome.value,
        bars_total=len(timeline),
        oldest_ts=str(oldest.ts) if oldest is not None else None,
    )
