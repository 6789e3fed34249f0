from .instrument import Instrument
from .market_board import BoardSnapshot, UnifiedRecord
from .ticker_snapshot import ChangeDirection, TickerSnapshot
from .timeline_event import BackfillOutcome, LiveMergeKind, TimelineEvent, TimelineEventKind
from .timeline_key import TimelineKey
from .viewport import LogicalRange

__all__ = [
    "BackfillOutcome",
    "BoardSnapshot",
    "ChangeDirection",
    "Instrument",
    "LiveMergeKind",
    "LogicalRange",
    "TickerSnapshot",
    "TimelineEvent",
    "TimelineEventKind",
    "TimelineKey",
    "UnifiedRecord",
]
