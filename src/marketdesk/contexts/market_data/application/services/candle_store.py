from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from marketdesk.contexts.market_data.application.dto import (
    BackfillOutcome,
    LiveMergeKind,
    TimelineEvent,
    TimelineEventKind,
    TimelineKey,
)
from marketdesk.contexts.market_data.application.ports.sources import CandleSource
from marketdesk.contexts.market_data.application.services.candle_timeline import CandleTimeline
from marketdesk.contexts.market_data.domain.errors import ErrorKind, error_kind_of
from marketdesk.platform.events import EventChannel, Subscription
from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class TimelineState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    BACKFILLING = "backfilling"


@dataclass(frozen=True, slots=True)
class CandleStoreHooks:
    """
    Optional callbacks invoked by the candle store.

    Parameters:
    - on_backfill_finished: callback with `(key, outcome, duration_seconds)`.
    - on_load_failed: callback with `(key, kind)` when an initial load fetch fails.

    Assumptions/Invariants:
    - Callbacks are lightweight and non-blocking.
    """

    on_backfill_finished: Callable[[TimelineKey, BackfillOutcome, float], None] | None = None
    on_load_failed: Callable[[TimelineKey, ErrorKind], None] | None = None


@dataclass(slots=True)
class _TimelineSlot:
    timeline: CandleTimeline
    state: TimelineState = TimelineState.EMPTY
    loading: bool = False
    pending_live: list[tuple[CandleBar, ...]] = field(default_factory=list)


class CandleStore:
    """
    In-memory candle timelines keyed by (instrument, timeframe).

    Parameters:
    - source: candle source port used by `load` and `request_backfill`.
    - page_size: bars requested per page, 1..200.
    - hooks: optional metrics callbacks.

    Assumptions/Invariants:
    - All methods run on the event loop thread; fetches run in worker threads and are the
      only suspension points.
    - Both merge paths use `CandleTimeline.merged`: keyed by canonical timestamp, incoming wins.
    - At most one backfill per key is in flight; a second request is a no-op.
    - Live updates arriving while a load or backfill is in flight are queued and replayed in
      arrival order once it resolves.
    - Results of fetches issued for a discarded timeline are ignored.
    """

    def __init__(
        self,
        *,
        source: CandleSource,
        page_size: int = MAX_PAGE_SIZE,
        hooks: CandleStoreHooks | None = None,
    ) -> None:
        """
        Initialize an empty store.

        Parameters:
        - source: candle source port.
        - page_size: page size for load and backfill fetches.
        - hooks: optional callbacks.

        Returns:
        - None.

        Assumptions/Invariants:
        - `page_size` is within the exchange limit.

        Errors/Exceptions:
        - Raises `ValueError` on invalid arguments.

        Side effects:
        - None.
        """
        if source is None:  # type: ignore[truthy-bool]
            raise ValueError("CandleStore requires source")
        if page_size <= 0 or page_size > MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be in [1, {MAX_PAGE_SIZE}], got {page_size}")

        self._source = source
        self._page_size = page_size
        self._hooks = hooks if hooks is not None else CandleStoreHooks()
        self._slots: dict[TimelineKey, _TimelineSlot] = {}
        self._channel: EventChannel[TimelineEvent] = EventChannel(name="candle_store")

    @property
    def page_size(self) -> int:
        return self._page_size

    def subscribe(
        self,
        listener: Callable[[TimelineEvent], None],
        *,
        key: TimelineKey | None = None,
    ) -> Subscription:
        """
        Register a timeline event listener, optionally restricted to one key.
        """
        if key is None:
            return self._channel.subscribe(listener)

        def _filtered(event: TimelineEvent) -> None:
            if event.key == key:
                listener(event)

        return self._channel.subscribe(_filtered)

    def current(self, instrument_id: InstrumentId, timeframe: Timeframe) -> CandleTimeline:
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.get(key)
        if slot is None:
            return CandleTimeline(key=key)
        return slot.timeline

    def state(self, instrument_id: InstrumentId, timeframe: Timeframe) -> TimelineState:
        slot = self._slots.get(TimelineKey(instrument_id=instrument_id, timeframe=timeframe))
        if slot is None:
            return TimelineState.EMPTY
        return slot.state

    def is_loading(self, instrument_id: InstrumentId, timeframe: Timeframe) -> bool:
        slot = self._slots.get(TimelineKey(instrument_id=instrument_id, timeframe=timeframe))
        return slot is not None and slot.loading

    def keys(self) -> tuple[TimelineKey, ...]:
        return tuple(self._slots)

    def merge_live(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        bars: Sequence[CandleBar],
    ) -> LiveMergeKind:
        """
        Merge a live-tail update.

        Parameters:
        - instrument_id: instrument of the timeline.
        - timeframe: timeframe of the timeline.
        - bars: newest bars as reported by the source.

        Returns:
        - INITIAL when the update created the timeline, IN_PLACE when the newest incoming
          bar replaced the last stored bar, ADVANCED when it appended a new bucket, QUEUED
          while a load or backfill is in flight, IGNORED for an empty update.

        Assumptions/Invariants:
        - Bars belong to `instrument_id` and carry canonical timestamps of `timeframe`.

        Errors/Exceptions:
        - Raises `ValueError` when a bar belongs to another instrument.

        Side effects:
        - Emits `loaded` or `live_updated` events.
        """
        batch = tuple(bars)
        if not batch:
            return LiveMergeKind.IGNORED

        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.get(key)
        if slot is None:
            slot = _TimelineSlot(timeline=CandleTimeline(key=key))
            self._slots[key] = slot

        if slot.loading or slot.state is TimelineState.BACKFILLING:
            slot.pending_live.append(batch)
            return LiveMergeKind.QUEUED

        return self._apply_live(key, slot, batch)

    def merge_backfill(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        older_bars: Sequence[CandleBar],
    ) -> BackfillOutcome:
        """
        Merge one page of older bars.

        Parameters:
        - instrument_id: instrument of the timeline.
        - timeframe: timeframe of the timeline.
        - older_bars: page returned by the source.

        Returns:
        - MERGED when at least one new timestamp was added, EXHAUSTED otherwise.

        Assumptions/Invariants:
        - Bars whose timestamp already exists are dropped; the page cannot overwrite live data.
        - Merging the same page twice is equivalent to merging it once.

        Errors/Exceptions:
        - Raises `ValueError` when a bar belongs to another instrument.

        Side effects:
        - Emits a `backfilled` or `backfill_exhausted` event.
        """
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.get(key)
        if slot is None:
            slot = _TimelineSlot(timeline=CandleTimeline(key=key), state=TimelineState.LOADED)
            self._slots[key] = slot
        return self._apply_backfill(key, slot, tuple(older_bars))

    async def load(self, instrument_id: InstrumentId, timeframe: Timeframe) -> CandleTimeline:
        """
        Fetch the most recent page and replace the timeline with it.

        Parameters:
        - instrument_id: instrument to load.
        - timeframe: timeframe to load.

        Returns:
        - Loaded timeline (after replaying live updates queued during the fetch).

        Assumptions/Invariants:
        - A concurrent load of the same key returns the current timeline without fetching.

        Errors/Exceptions:
        - Propagates `SourceError` from the candle source; the timeline is left as it was.

        Side effects:
        - Emits a `loaded` event, followed by `live_updated` events for queued updates.
        """
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.get(key)
        if slot is None:
            slot = _TimelineSlot(timeline=CandleTimeline(key=key))
            self._slots[key] = slot
        if slot.loading or slot.state is TimelineState.BACKFILLING:
            return slot.timeline

        slot.loading = True
        try:
            bars = await asyncio.to_thread(
                self._source.fetch_bars,
                instrument_id,
                timeframe,
                self._page_size,
                None,
            )
        except Exception as exc:
            if self._slots.get(key) is slot:
                slot.loading = False
                kind = error_kind_of(exc)
                log.warning("candle load of %s failed (%s): %s", key, kind.value, exc)
                _emit_load_failed(self._hooks.on_load_failed, key, kind)
                self._replay_pending(key, slot)
            raise

        if self._slots.get(key) is not slot:
            log.debug("dropping load result of discarded timeline %s", key)
            return CandleTimeline(key=key)

        slot.loading = False
        slot.timeline = CandleTimeline(key=key).merged(bars)
        slot.state = TimelineState.LOADED
        self._channel.publish(
            TimelineEvent(
                key=key,
                kind=TimelineEventKind.LOADED,
                timeline=slot.timeline,
                added=len(slot.timeline),
            )
        )
        self._replay_pending(key, slot)
        return slot.timeline

    async def request_backfill(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        before_merge: Callable[[], None] | None = None,
    ) -> BackfillOutcome:
        """
        Fetch and merge one page older than the current oldest bar.

        Parameters:
        - instrument_id: instrument of the timeline.
        - timeframe: timeframe of the timeline.
        - before_merge: optional callback invoked synchronously right before new bars are
          merged (used to capture the visible viewport).

        Returns:
        - MERGED, EXHAUSTED, FAILED, or SKIPPED when the timeline is not loaded, is already
          backfilling, or was discarded while the fetch was in flight.

        Assumptions/Invariants:
        - Fetch failures never modify the timeline.

        Errors/Exceptions:
        - None. Source failures are reported as FAILED.

        Side effects:
        - Emits one of `backfilled`, `backfill_exhausted`, `backfill_failed`, then replays
          queued live updates.
        """
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.get(key)
        if slot is None or slot.state is not TimelineState.LOADED or slot.loading:
            return BackfillOutcome.SKIPPED
        oldest = slot.timeline.oldest
        if oldest is None:
            return BackfillOutcome.SKIPPED

        slot.state = TimelineState.BACKFILLING
        started = asyncio.get_running_loop().time()
        try:
            bars = await asyncio.to_thread(
                self._source.fetch_bars,
                instrument_id,
                timeframe,
                self._page_size,
                oldest.ts,
            )
        except Exception as exc:  # noqa: BLE001
            if self._slots.get(key) is not slot:
                return BackfillOutcome.SKIPPED
            log.warning("backfill of %s failed (%s): %s", key, error_kind_of(exc).value, exc)
            slot.state = TimelineState.LOADED
            self._channel.publish(
                TimelineEvent(key=key, kind=TimelineEventKind.BACKFILL_FAILED, timeline=slot.timeline)
            )
            self._finish_backfill(key, slot, BackfillOutcome.FAILED, started)
            return BackfillOutcome.FAILED

        if self._slots.get(key) is not slot:
            log.debug("dropping backfill result of discarded timeline %s", key)
            return BackfillOutcome.SKIPPED

        existing = slot.timeline.timestamps()
        fresh = tuple(bar for bar in bars if bar.ts not in existing)
        slot.state = TimelineState.LOADED
        if fresh and before_merge is not None:
            try:
                before_merge()
            except Exception:  # noqa: BLE001
                log.exception("before_merge callback failed for %s", key)

        outcome = self._apply_backfill(key, slot, fresh)
        self._finish_backfill(key, slot, outcome, started)
        return outcome

    def discard(self, instrument_id: InstrumentId, timeframe: Timeframe) -> bool:
        """
        Drop the timeline; in-flight fetches for it will be ignored.

        Returns `True` when a timeline existed.
        """
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        slot = self._slots.pop(key, None)
        if slot is None:
            return False
        slot.pending_live.clear()
        self._channel.publish(
            TimelineEvent(key=key, kind=TimelineEventKind.DISCARDED, timeline=CandleTimeline(key=key))
        )
        return True

    def _apply_live(
        self,
        key: TimelineKey,
        slot: _TimelineSlot,
        batch: tuple[CandleBar, ...],
    ) -> LiveMergeKind:
        before = slot.timeline
        newest_incoming = max(batch, key=lambda bar: bar.ts.value)
        last = before.newest

        if last is None:
            kind = LiveMergeKind.INITIAL
        elif newest_incoming.ts == last.ts:
            kind = LiveMergeKind.IN_PLACE
        else:
            kind = LiveMergeKind.ADVANCED

        existing = before.timestamps()
        slot.timeline = before.merged(batch)
        added = sum(1 for ts in {bar.ts for bar in batch} if ts not in existing)

        if kind is LiveMergeKind.INITIAL:
            slot.state = TimelineState.LOADED
            event_kind = TimelineEventKind.LOADED
        else:
            event_kind = TimelineEventKind.LIVE_UPDATED
        self._channel.publish(
            TimelineEvent(key=key, kind=event_kind, timeline=slot.timeline, added=added)
        )
        return kind

    def _apply_backfill(
        self,
        key: TimelineKey,
        slot: _TimelineSlot,
        bars: tuple[CandleBar, ...],
    ) -> BackfillOutcome:
        existing = slot.timeline.timestamps()
        fresh = tuple(bar for bar in bars if bar.ts not in existing)
        if not fresh:
            self._channel.publish(
                TimelineEvent(
                    key=key,
                    kind=TimelineEventKind.BACKFILL_EXHAUSTED,
                    timeline=slot.timeline,
                )
            )
            return BackfillOutcome.EXHAUSTED

        before_len = len(slot.timeline)
        slot.timeline = slot.timeline.merged(fresh)
        self._channel.publish(
            TimelineEvent(
                key=key,
                kind=TimelineEventKind.BACKFILLED,
                timeline=slot.timeline,
                added=len(slot.timeline) - before_len,
            )
        )
        return BackfillOutcome.MERGED

    def _finish_backfill(
        self,
        key: TimelineKey,
        slot: _TimelineSlot,
        outcome: BackfillOutcome,
        started: float,
    ) -> None:
        duration = max(asyncio.get_running_loop().time() - started, 0.0)
        _emit_backfill_finished(self._hooks.on_backfill_finished, key, outcome, duration)
        self._replay_pending(key, slot)

    def _replay_pending(self, key: TimelineKey, slot: _TimelineSlot) -> None:
        while slot.pending_live and self._slots.get(key) is slot:
            batch = slot.pending_live.pop(0)
            self._apply_live(key, slot, batch)


def _emit_backfill_finished(
    callback: Callable[[TimelineKey, BackfillOutcome, float], None] | None,
    key: TimelineKey,
    outcome: BackfillOutcome,
    duration_seconds: float,
) -> None:
    if callback is None:
        return
    callback(key, outcome, duration_seconds)


def _emit_load_failed(
    callback: Callable[[TimelineKey, ErrorKind], None] | None,
    key: TimelineKey,
    kind: ErrorKind,
) -> None:
    if callback is None:
        return
    callback(key, kind)
