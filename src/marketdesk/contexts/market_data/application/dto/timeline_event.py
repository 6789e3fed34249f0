from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from marketdesk.contexts.market_data.application.dto.timeline_key import TimelineKey

if TYPE_CHECKING:
    from marketdesk.contexts.market_data.application.services.candle_timeline import (
        CandleTimeline,
    )


class TimelineEventKind(str, Enum):
    LOADED = "loaded"
    LIVE_UPDATED = "live_updated"
    BACKFILLED = "backfilled"
    BACKFILL_FAILED = "backfill_failed"
    BACKFILL_EXHAUSTED = "backfill_exhausted"
    DISCARDED = "discarded"


class BackfillOutcome(str, Enum):
    MERGED = "merged"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    SKIPPED = "skipped"


class LiveMergeKind(str, Enum):
    INITIAL = "initial"
    IN_PLACE = "in_place"
    ADVANCED = "advanced"
    QUEUED = "queued"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    """
    Notification published by the candle store on every timeline change.

    `timeline` is the timeline after the change (empty for DISCARDED).
    `added` counts bars whose key was not present before the change.
    """

    key: TimelineKey
    kind: TimelineEventKind
    timeline: CandleTimeline
    added: int = 0
