from __future__ import annotations

import asyncio
import logging

from marketdesk.contexts.market_data.application.dto import (
    BackfillOutcome,
    LogicalRange,
    TimelineEvent,
    TimelineEventKind,
    TimelineKey,
)
from marketdesk.contexts.market_data.application.ports.render import ChartViewport
from marketdesk.contexts.market_data.application.services.candle_store import (
    CandleStore,
    TimelineState,
)
from marketdesk.shared_kernel.primitives import InstrumentId, TimeRange, Timeframe

log = logging.getLogger(__name__)

DEFAULT_BACKFILL_TOLERANCE = 10.0
DEFAULT_RESTORE_RETRY_DELAY_S = 0.05


class ViewportController:
    """
    Drives infinite scroll for one rendered timeline.

    Parameters:
    - store: candle store owning the timeline.
    - viewport: renderer port of the chart showing the timeline.
    - instrument_id: instrument of the timeline.
    - timeframe: timeframe of the timeline.
    - tolerance: a logical range starting below this bar index triggers a backfill.
    - restore_retry_delay_s: delay before the single retry of a rejected restore.

    Assumptions/Invariants:
    - `on_visible_range_changed` is called on the event loop thread.
    - At most one backfill task per controller is in flight.
    - After EXHAUSTED or FAILED the trigger stays latched until the range leaves the
      boundary zone, so a resting viewport does not hammer the source.
    - The visible real-time range captured right before a backfill merge is restored after
      it; `fit_content` runs once, on the first load only.
    """

    def __init__(
        self,
        *,
        store: CandleStore,
        viewport: ChartViewport,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        tolerance: float = DEFAULT_BACKFILL_TOLERANCE,
        restore_retry_delay_s: float = DEFAULT_RESTORE_RETRY_DELAY_S,
    ) -> None:
        """
        Bind the controller to one timeline and subscribe to its events.

        Parameters:
        - store: candle store.
        - viewport: renderer port.
        - instrument_id: timeline instrument.
        - timeframe: timeline timeframe.
        - tolerance: boundary zone width in bars.
        - restore_retry_delay_s: retry delay for viewport restore.

        Returns:
        - None.

        Assumptions/Invariants:
        - `tolerance` is positive and `restore_retry_delay_s` is non-negative.

        Errors/Exceptions:
        - Raises `ValueError` on invalid arguments.

        Side effects:
        - Subscribes to the store event channel; fits content when the timeline is
          already loaded.
        """
        if store is None:  # type: ignore[truthy-bool]
            raise ValueError("ViewportController requires store")
        if viewport is None:  # type: ignore[truthy-bool]
            raise ValueError("ViewportController requires viewport")
        if tolerance <= 0:
            raise ValueError(f"tolerance must be > 0, got {tolerance}")
        if restore_retry_delay_s < 0:
            raise ValueError(f"restore_retry_delay_s must be >= 0, got {restore_retry_delay_s}")

        self._store = store
        self._viewport = viewport
        self._key = TimelineKey(instrument_id=instrument_id, timeframe=timeframe)
        self._tolerance = tolerance
        self._restore_retry_delay_s = restore_retry_delay_s

        self._fitted = False
        self._latched = False
        self._closed = False
        self._captured: TimeRange | None = None
        self._task: asyncio.Task[BackfillOutcome] | None = None

        self._subscription = store.subscribe(self._on_timeline_event, key=self._key)
        if store.state(instrument_id, timeframe) is not TimelineState.EMPTY:
            self._fit_once()

    @property
    def key(self) -> TimelineKey:
        return self._key

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def latched(self) -> bool:
        return self._latched

    @property
    def backfill_in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_visible_range_changed(self, logical_range: LogicalRange | None) -> bool:
        """
        React to a viewport movement.

        Parameters:
        - logical_range: visible logical range, None when the renderer has no data.

        Returns:
        - `True` when a backfill was started.

        Assumptions/Invariants:
        - Called for every movement; cheap when nothing has to happen.

        Errors/Exceptions:
        - None.

        Side effects:
        - May start a backfill task on the running event loop.
        """
        if self._closed or logical_range is None:
            return False

        if logical_range.from_index >= self._tolerance:
            self._latched = False
            return False

        if self._latched or self.backfill_in_flight:
            return False
        if self._store.state(self._key.instrument_id, self._key.timeframe) is not TimelineState.LOADED:  # noqa: E501
            return False

        self._task = asyncio.get_running_loop().create_task(
            self._backfill(),
            name=f"backfill-{self._key}",
        )
        return True

    async def wait_idle(self) -> BackfillOutcome | None:
        """Wait for the in-flight backfill, if any, and return its outcome."""
        task = self._task
        if task is None:
            return None
        return await task

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscription.unsubscribe()

    async def _backfill(self) -> BackfillOutcome:
        self._captured = None
        outcome = await self._store.request_backfill(
            self._key.instrument_id,
            self._key.timeframe,
            before_merge=self._capture_visible_range,
        )

        if outcome in (BackfillOutcome.EXHAUSTED, BackfillOutcome.FAILED):
            self._latched = True
            log.info("backfill of %s %s; trigger latched", self._key, outcome.value)
        elif outcome is BackfillOutcome.MERGED and self._captured is not None:
            await self._restore(self._captured)

        self._captured = None
        return outcome

    def _capture_visible_range(self) -> None:
        self._captured = self._viewport.visible_time_range()

    async def _restore(self, time_range: TimeRange) -> None:
        # The renderer applies new data on its next turn of the loop.
        await asyncio.sleep(0)
        if self._closed:
            return
        if self._viewport.set_visible_time_range(time_range):
            return

        await asyncio.sleep(self._restore_retry_delay_s)
        if self._closed:
            return
        if not self._viewport.set_visible_time_range(time_range):
            log.debug("renderer rejected visible range restore for %s", self._key)

    def _on_timeline_event(self, event: TimelineEvent) -> None:
        if event.kind is TimelineEventKind.LOADED:
            self._fit_once()
        elif event.kind is TimelineEventKind.DISCARDED:
            self.close()

    def _fit_once(self) -> None:
        if self._fitted:
            return
        self._fitted = True
        self._viewport.fit_content()
