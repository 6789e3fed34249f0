from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from marketdesk.contexts.market_data.application.dto.timeline_key import TimelineKey
from marketdesk.shared_kernel.primitives import CandleBar, TimeRange, UtcTimestamp


@dataclass(frozen=True, slots=True)
class CandleTimeline:
    """
    CandleTimeline — immutable ordered bar sequence of one (instrument, timeframe).

    Invariants:
    - bars are strictly increasing by canonical timestamp (`bar.ts`)
    - no two bars share a timestamp
    - every bar belongs to `key.instrument_id`

    Every merge returns a new timeline; the receiver is never modified.
    """

    key: TimelineKey
    bars: tuple[CandleBar, ...] = ()

    def __post_init__(self) -> None:
        previous: UtcTimestamp | None = None
        for bar in self.bars:
            if bar.instrument_id != self.key.instrument_id:
                raise ValueError(
                    f"CandleTimeline {self.key} cannot hold bar of {bar.instrument_id}"
                )
            if previous is not None and bar.ts.value <= previous.value:
                raise ValueError(
                    f"CandleTimeline {self.key} requires strictly increasing ts, "
                    f"got {bar.ts} after {previous}"
                )
            previous = bar.ts

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[CandleBar]:
        return iter(self.bars)

    @property
    def is_empty(self) -> bool:
        return not self.bars

    @property
    def oldest(self) -> CandleBar | None:
        return self.bars[0] if self.bars else None

    @property
    def newest(self) -> CandleBar | None:
        return self.bars[-1] if self.bars else None

    def time_range(self) -> TimeRange | None:
        if not self.bars:
            return None
        return TimeRange(start=self.bars[0].ts, end=self.bars[-1].ts)

    def timestamps(self) -> frozenset[UtcTimestamp]:
        return frozenset(bar.ts for bar in self.bars)

    def merged(self, incoming: Iterable[CandleBar]) -> CandleTimeline:
        """
        Overlay `incoming` onto this timeline keyed by canonical timestamp.

        Parameters:
        - incoming: bars in any order, possibly overlapping this timeline or each other.

        Returns:
        - New timeline; for equal timestamps the incoming bar wins, and among incoming
          bars the later one in iteration order wins.

        Assumptions/Invariants:
        - Merging the same bars twice gives the same timeline as merging them once.
        """
        by_ts: dict[UtcTimestamp, CandleBar] = {bar.ts: bar for bar in self.bars}
        for bar in incoming:
            by_ts[bar.ts] = bar
        ordered = tuple(by_ts[ts] for ts in sorted(by_ts, key=lambda item: item.value))
        return CandleTimeline(key=self.key, bars=ordered)
