from .board import BoardRecordResponse, BoardResponse, build_board_response
from .candles import (
    CandleBackfillResponse,
    CandleBarResponse,
    CandleTimelineResponse,
    build_candle_backfill_response,
    build_candle_timeline_response,
)

__all__ = [
    "BoardRecordResponse",
    "BoardResponse",
    "CandleBackfillResponse",
    "CandleBarResponse",
    "CandleTimelineResponse",
    "build_board_response",
    "build_candle_backfill_response",
    "build_candle_timeline_response",
]
