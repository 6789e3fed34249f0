from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from marketdesk.contexts.market_data.application.dto import LogicalRange, TimelineKey
from marketdesk.contexts.market_data.application.services import (
    CandleStore,
    ChartSession,
    ChartSessionSettings,
    TimelineState,
)
from marketdesk.contexts.market_data.domain.errors import SourceError, SourceUnavailableError
from marketdesk.shared_kernel.primitives import (
    CandleBar,
    InstrumentId,
    TimeRange,
    Timeframe,
    UtcTimestamp,
)

_BTC = InstrumentId.parse("KRW-BTC")
_ETH = InstrumentId.parse("KRW-ETH")
_M1 = Timeframe("1m")
_BASE = datetime(2026, 2, 1, 0, 0, tzinfo=timezone.utc)
_HISTORY_PAGE = 3
_LIVE_PAGE = 2


def _bar(instrument_id: InstrumentId, minute: int, close: float = 100.0) -> CandleBar:
    return CandleBar(
        instrument_id=instrument_id,
        ts=UtcTimestamp(_BASE + timedelta(minutes=minute)),
        open=close,
        high=close,
        low=close,
        close=close,
        acc_trade_price=1.0,
        acc_trade_volume=1.0,
    )


class _LiveSource:
    """History pages answer full-size requests; live pages answer live-size requests."""

    def __init__(self, *, failing_history: int = 0) -> None:
        self.history_calls: list[InstrumentId] = []
        self.live_calls: list[InstrumentId] = []
        self._failing_history = failing_history

    def fetch_bars(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        count: int,
        before: UtcTimestamp | None = None,
    ) -> Sequence[CandleBar]:
        if count == _LIVE_PAGE:
            self.live_calls.append(instrument_id)
            return [_bar(instrument_id, 11, close=111.0), _bar(instrument_id, 12)]
        self.history_calls.append(instrument_id)
        if self._failing_history > 0:
            self._failing_history -= 1
            raise SourceUnavailableError("candles down", source="candles")
        if before is not None:
            return []
        return [_bar(instrument_id, 9), _bar(instrument_id, 10), _bar(instrument_id, 11)]


class _Viewport:
    def __init__(self) -> None:
        self.fit_calls = 0

    def visible_logical_range(self) -> LogicalRange | None:
        return None

    def visible_time_range(self) -> TimeRange | None:
        return None

    def set_visible_time_range(self, time_range: TimeRange) -> bool:
        return True

    def fit_content(self) -> None:
        self.fit_calls += 1


def _session(
    source: _LiveSource,
    *,
    viewport: _Viewport | None = None,
    live_interval_s: float = 60.0,
) -> tuple[ChartSession, CandleStore]:
    store = CandleStore(source=source, page_size=_HISTORY_PAGE)
    session = ChartSession(
        store=store,
        source=source,
        settings=ChartSessionSettings(
            live_interval_s=live_interval_s,
            live_page_size=_LIVE_PAGE,
            restore_retry_delay_s=0.0,
        ),
        viewport=viewport,
    )
    return session, store


def test_select_loads_timeline_once() -> None:
    async def _scenario() -> None:
        source = _LiveSource()
        session, store = _session(source)

        first = await session.select(_BTC, _M1)
        again = await session.select(_BTC, _M1)

        assert len(first) == 3
        assert again == first
        assert source.history_calls == [_BTC]
        assert session.selection == TimelineKey(instrument_id=_BTC, timeframe=_M1)
        assert store.state(_BTC, _M1) is TimelineState.LOADED
        await session.close()

    asyncio.run(_scenario())


def test_switching_selection_discards_previous_timeline() -> None:
    async def _scenario() -> None:
        source = _LiveSource()
        viewport = _Viewport()
        session, store = _session(source, viewport=viewport)

        await session.select(_BTC, _M1)
        btc_controller = session.controller
        await session.select(_ETH, _M1)

        assert store.state(_BTC, _M1) is TimelineState.EMPTY
        assert store.state(_ETH, _M1) is TimelineState.LOADED
        assert btc_controller is not None and btc_controller.closed is True
        assert session.controller is not None and session.controller is not btc_controller
        assert viewport.fit_calls == 2

        await session.close()
        assert session.selection is None
        assert session.current() is None
        assert store.state(_ETH, _M1) is TimelineState.EMPTY

    asyncio.run(_scenario())


def test_live_poll_merges_newest_bars_into_selection() -> None:
    async def _scenario() -> None:
        source = _LiveSource()
        session, store = _session(source, live_interval_s=0.01)

        await session.select(_BTC, _M1)

        async def _wait_live() -> None:
            while len(store.current(_BTC, _M1)) < 4:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_wait_live(), timeout=2.0)
        timeline = session.current()

        assert timeline is not None
        assert timeline.bars[2].close == 111.0
        assert timeline.newest == _bar(_BTC, 12)
        await session.close()

    asyncio.run(_scenario())


def test_visible_range_changes_are_forwarded_to_controller() -> None:
    async def _scenario() -> None:
        source = _LiveSource()
        session, _store = _session(source, viewport=_Viewport())

        assert session.on_visible_range_changed(LogicalRange(0.0, 5.0)) is False

        await session.select(_BTC, _M1)
        assert session.on_visible_range_changed(LogicalRange(0.0, 5.0)) is True

        controller = session.controller
        assert controller is not None
        await controller.wait_idle()
        assert source.history_calls == [_BTC, _BTC]
        await session.close()

    asyncio.run(_scenario())


def test_session_without_viewport_has_no_controller() -> None:
    async def _scenario() -> None:
        session, _store = _session(_LiveSource())

        await session.select(_BTC, _M1)

        assert session.controller is None
        assert session.on_visible_range_changed(LogicalRange(0.0, 5.0)) is False
        await session.close()

    asyncio.run(_scenario())


def test_reselect_after_failed_load_fetches_full_page() -> None:
    async def _scenario() -> None:
        source = _LiveSource(failing_history=1)
        session, store = _session(source)

        with pytest.raises(SourceError):
            await session.select(_BTC, _M1)
        assert store.state(_BTC, _M1) is TimelineState.EMPTY

        timeline = await session.select(_BTC, _M1)

        assert source.history_calls == [_BTC, _BTC]
        assert len(timeline) == _HISTORY_PAGE
        assert store.state(_BTC, _M1) is TimelineState.LOADED
        await session.close()

    asyncio.run(_scenario())


def test_live_poll_reloads_full_page_after_failed_load() -> None:
    async def _scenario() -> None:
        source = _LiveSource(failing_history=1)
        session, store = _session(source, live_interval_s=0.01)

        with pytest.raises(SourceError):
            await session.select(_BTC, _M1)

        async def _wait_loaded() -> None:
            while store.state(_BTC, _M1) is not TimelineState.LOADED:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_wait_loaded(), timeout=2.0)

        timeline = store.current(_BTC, _M1)
        assert source.history_calls[:2] == [_BTC, _BTC]
        assert source.live_calls
        assert timeline.oldest == _bar(_BTC, 9)
        await session.close()

    asyncio.run(_scenario())
