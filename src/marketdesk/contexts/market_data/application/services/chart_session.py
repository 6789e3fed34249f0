from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from marketdesk.contexts.market_data.application.dto import LogicalRange, TimelineKey
from marketdesk.contexts.market_data.application.ports.render import ChartViewport
from marketdesk.contexts.market_data.application.ports.sources import CandleSource
from marketdesk.contexts.market_data.application.services.candle_store import (
    CandleStore,
    TimelineState,
)
from marketdesk.contexts.market_data.application.services.candle_timeline import CandleTimeline
from marketdesk.contexts.market_data.application.services.source_poller import (
    SourcePoller,
    SourcePollerHooks,
)
from marketdesk.contexts.market_data.application.services.viewport_controller import (
    DEFAULT_BACKFILL_TOLERANCE,
    DEFAULT_RESTORE_RETRY_DELAY_S,
    ViewportController,
)
from marketdesk.contexts.market_data.domain.errors import SourceError
from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChartSessionSettings:
    """
    Tunables of the selected-chart session.

    Parameters:
    - live_interval_s: live-tail poll interval.
    - live_page_size: bars fetched per live poll (the current bar plus recently closed ones).
    - backfill_tolerance: boundary zone width in bars.
    - restore_retry_delay_s: viewport restore retry delay.
    """

    live_interval_s: float = 3.0
    live_page_size: int = 2
    backfill_tolerance: float = DEFAULT_BACKFILL_TOLERANCE
    restore_retry_delay_s: float = DEFAULT_RESTORE_RETRY_DELAY_S

    def __post_init__(self) -> None:
        if self.live_interval_s <= 0:
            raise ValueError(f"live_interval_s must be > 0, got {self.live_interval_s}")
        if self.live_page_size <= 0:
            raise ValueError(f"live_page_size must be > 0, got {self.live_page_size}")


class ChartSession:
    """
    The currently selected (instrument, timeframe) chart.

    Parameters:
    - store: candle store holding the timeline.
    - source: candle source used by the live-tail poll.
    - settings: session tunables.
    - viewport: optional renderer port; without it no viewport controller is created.
    - hooks: optional metrics callbacks of the live-tail poller.

    Assumptions/Invariants:
    - At most one selection is active; selecting another instrument or timeframe discards
      the previous timeline, stops its live poll and closes its viewport controller.
    - Live bars are merged through `CandleStore.merge_live`, so they queue behind an
      in-flight backfill.
    - A live poll never creates a timeline; while the selection is still empty it
      schedules a full `CandleStore.load` instead.
    """

    def __init__(
        self,
        *,
        store: CandleStore,
        source: CandleSource,
        settings: ChartSessionSettings | None = None,
        viewport: ChartViewport | None = None,
        hooks: SourcePollerHooks | None = None,
    ) -> None:
        if store is None:  # type: ignore[truthy-bool]
            raise ValueError("ChartSession requires store")
        if source is None:  # type: ignore[truthy-bool]
            raise ValueError("ChartSession requires source")

        self._store = store
        self._source = source
        self._settings = settings if settings is not None else ChartSessionSettings()
        self._viewport = viewport
        self._hooks = hooks

        self._selection: TimelineKey | None = None
        self._controller: ViewportController | None = None
        self._live_stop: asyncio.Event | None = None
        self._live_task: asyncio.Task[None] | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def selection(self) -> TimelineKey | None:
        return self._selection

    @property
    def controller(self) -> ViewportController | None:
        return self._controller

    def current(self) -> CandleTimeline | None:
        if self._selection is None:
            return None
        return self._store.current(self._selection.instrument_id, self._selection.timeframe)

    async def select(self, instrument_id: InstrumentId, timeframe: Timeframe) -> CandleTimeline:
        """
        Make (instrument_id, timeframe) the selected chart.

        Parameters:
        - instrument_id: instrument to show.
        - timeframe: timeframe to show.

        Returns:
        - Current timeline of the selection, loaded when it was not already selected.

        Assumptions/Invariants:
        - Re-selecting the active selection does not reload once its timeline is loaded;
          re-selecting it while the timeline is still empty retries the full load.

        Errors/Exceptions:
        - Propagates `SourceError` when the initial load fails; the selection stays active
          and the live poll retries the full load.

        Side effects:
        - Discards the previous timeline, (re)starts the live poll, creates a viewport
          controller when a viewport is attached.
        """
        key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        async with self._lock:
            if self._selection == key:
                if self._store.state(instrument_id, timeframe) is not TimelineState.EMPTY:
                    return self._store.current(instrument_id, timeframe)
            else:
                await self._reset()
                self._selection = key
                if self._viewport is not None:
                    self._controller = ViewportController(
                        store=self._store,
                        viewport=self._viewport,
                        instrument_id=instrument_id,
                        timeframe=timeframe,
                        tolerance=self._settings.backfill_tolerance,
                        restore_retry_delay_s=self._settings.restore_retry_delay_s,
                    )
                self._start_live(key)

        return await self._store.load(instrument_id, timeframe)

    def on_visible_range_changed(self, logical_range: LogicalRange | None) -> bool:
        if self._controller is None:
            return False
        return self._controller.on_visible_range_changed(logical_range)

    async def close(self) -> None:
        async with self._lock:
            await self._reset()

    async def _reset(self) -> None:
        if self._controller is not None:
            self._controller.close()
            self._controller = None

        if self._live_stop is not None:
            self._live_stop.set()
        if self._reload_task is not None:
            self._reload_task.cancel()
        pending = [task for task in (self._live_task, self._reload_task) if task is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._live_stop = None
        self._live_task = None
        self._reload_task = None

        if self._selection is not None:
            previous = self._selection
            self._selection = None
            self._store.discard(previous.instrument_id, previous.timeframe)

    def _start_live(self, key: TimelineKey) -> None:
        instrument_id = key.instrument_id
        timeframe = key.timeframe
        page_size = self._settings.live_page_size

        def _fetch() -> Sequence[CandleBar]:
            return self._source.fetch_bars(instrument_id, timeframe, page_size, None)

        def _apply(bars: Sequence[CandleBar]) -> None:
            if (
                self._store.state(instrument_id, timeframe) is TimelineState.EMPTY
                and not self._store.is_loading(instrument_id, timeframe)
            ):
                # empty timelines start from a full page only
                self._schedule_reload(key)
                return
            self._store.merge_live(instrument_id, timeframe, bars)

        poller: SourcePoller[Sequence[CandleBar]] = SourcePoller(
            name="candles_live",
            fetch=_fetch,
            apply=_apply,
            interval_s=self._settings.live_interval_s,
            hooks=self._hooks,
        )
        stop_event = asyncio.Event()
        self._live_stop = stop_event
        self._live_task = asyncio.create_task(
            poller.run(stop_event, poll_immediately=False),
            name=f"candles-live-{key}",
        )

    def _schedule_reload(self, key: TimelineKey) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            return
        self._reload_task = asyncio.create_task(self._reload(key), name=f"candles-reload-{key}")

    async def _reload(self, key: TimelineKey) -> None:
        try:
            await self._store.load(key.instrument_id, key.timeframe)
        except SourceError as exc:
            log.debug("reload of %s failed, retrying on next live poll: %s", key, exc)
