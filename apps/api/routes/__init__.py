from .board import build_board_router
from .candles import build_candles_router
from .health import build_health_router

__all__ = [
    "build_board_router",
    "build_candles_router",
    "build_health_router",
]
