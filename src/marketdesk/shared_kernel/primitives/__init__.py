"""
Shared Kernel primitives.

This package re-exports the minimal set of domain primitives so that other
modules can import them from one place:

    from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe
"""

from .candle_bar import CandleBar
from .instrument_id import InstrumentId
from .symbol import Symbol
from .time_range import TimeRange
from .timeframe import Timeframe, TimeframeKind
from .utc_timestamp import UtcTimestamp

__all__ = [
    "CandleBar",
    "InstrumentId",
    "Symbol",
    "TimeRange",
    "Timeframe",
    "TimeframeKind",
    "UtcTimestamp",
]
