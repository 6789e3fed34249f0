from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from marketdesk.contexts.market_data.application.dto import (
    BackfillOutcome,
    LiveMergeKind,
    TimelineEvent,
    TimelineEventKind,
    TimelineKey,
)
from marketdesk.contexts.market_data.application.services import (
    CandleStore,
    CandleStoreHooks,
    TimelineState,
)
from marketdesk.contexts.market_data.domain.errors import ErrorKind, SourceUnavailableError
from marketdesk.shared_kernel.primitives import CandleBar, InstrumentId, Timeframe, UtcTimestamp

_BTC = InstrumentId.parse("KRW-BTC")
_M1 = Timeframe("1m")
_BASE = datetime(2026, 2, 1, 0, 0, tzinfo=timezone.utc)


def _bar(minute: int, close: float = 100.0) -> CandleBar:
    return CandleBar(
        instrument_id=_BTC,
        ts=UtcTimestamp(_BASE + timedelta(minutes=minute)),
        open=close,
        high=close,
        low=close,
        close=close,
        acc_trade_price=1.0,
        acc_trade_volume=1.0,
    )


def _minutes(bars: Sequence[CandleBar]) -> list[int]:
    return [int((bar.ts.value - _BASE) / timedelta(minutes=1)) for bar in bars]


class _FakeCandleSource:
    """
    Candle source fake serving scripted pages in call order.

    Parameters:
    - pages: list of bars or exception per call.
    - gated: when True each call blocks until its gate is released.
    """

    def __init__(self, pages: list[object], *, gated: bool = False) -> None:
        self._pages = pages
        self._gated = gated
        self._lock = threading.Lock()
        self.calls: list[tuple[InstrumentId, Timeframe, int, UtcTimestamp | None]] = []
        self.gates: list[threading.Event] = []

    def fetch_bars(
        self,
        instrument_id: InstrumentId,
        timeframe: Timeframe,
        count: int,
        before: UtcTimestamp | None = None,
    ) -> Sequence[CandleBar]:
        gate = threading.Event()
        with self._lock:
            index = len(self.calls)
            self.calls.append((instrument_id, timeframe, count, before))
            self.gates.append(gate)
        if self._gated:
            gate.wait(timeout=5.0)
        page = self._pages[index]
        if isinstance(page, Exception):
            raise page
        return page  # type: ignore[return-value]


async def _wait_calls(source: _FakeCandleSource, count: int) -> None:
    while len(source.calls) < count:
        await asyncio.sleep(0.001)


def test_load_fetches_latest_page_and_emits_loaded() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(2), _bar(0), _bar(1)]])
        store = CandleStore(source=source, page_size=3)
        events: list[TimelineEvent] = []
        store.subscribe(events.append)

        timeline = await store.load(_BTC, _M1)

        assert _minutes(timeline.bars) == [0, 1, 2]
        assert store.state(_BTC, _M1) is TimelineState.LOADED
        assert source.calls == [(_BTC, _M1, 3, None)]
        assert [e.kind for e in events] == [TimelineEventKind.LOADED]
        assert events[0].added == 3

    asyncio.run(_scenario())


def test_load_failure_propagates_and_reports_hook() -> None:
    async def _scenario() -> None:
        failures: list[tuple[TimelineKey, ErrorKind]] = []
        source = _FakeCandleSource([SourceUnavailableError("down")])
        store = CandleStore(
            source=source,
            hooks=CandleStoreHooks(on_load_failed=lambda key, kind: failures.append((key, kind))),
        )

        with pytest.raises(SourceUnavailableError):
            await store.load(_BTC, _M1)

        assert store.state(_BTC, _M1) is TimelineState.EMPTY
        assert failures == [
            (TimelineKey(instrument_id=_BTC, timeframe=_M1), ErrorKind.SOURCE_UNAVAILABLE)
        ]

    asyncio.run(_scenario())


def test_merge_live_reports_in_place_and_advanced_updates() -> None:
    store = CandleStore(source=_FakeCandleSource([]))

    assert store.merge_live(_BTC, _M1, [_bar(0), _bar(1)]) is LiveMergeKind.INITIAL
    assert store.merge_live(_BTC, _M1, [_bar(1, close=101.0)]) is LiveMergeKind.IN_PLACE
    assert store.merge_live(_BTC, _M1, [_bar(1, close=102.0), _bar(2)]) is LiveMergeKind.ADVANCED
    assert store.merge_live(_BTC, _M1, []) is LiveMergeKind.IGNORED

    timeline = store.current(_BTC, _M1)
    assert _minutes(timeline.bars) == [0, 1, 2]
    assert timeline.bars[1].close == 102.0


def test_merge_backfill_adds_only_new_timestamps() -> None:
    store = CandleStore(source=_FakeCandleSource([]))
    store.merge_live(_BTC, _M1, [_bar(5, close=150.0), _bar(6)])

    outcome = store.merge_backfill(_BTC, _M1, [_bar(3), _bar(4), _bar(5, close=1.0)])

    timeline = store.current(_BTC, _M1)
    assert outcome is BackfillOutcome.MERGED
    assert _minutes(timeline.bars) == [3, 4, 5, 6]
    assert timeline.bars[2].close == 150.0
    assert store.merge_backfill(_BTC, _M1, [_bar(3), _bar(4)]) is BackfillOutcome.EXHAUSTED


def test_request_backfill_fetches_before_oldest_and_merges() -> None:
    async def _scenario() -> None:
        finished: list[BackfillOutcome] = []
        source = _FakeCandleSource([[_bar(10), _bar(11)], [_bar(8), _bar(9)]])
        store = CandleStore(
            source=source,
            page_size=2,
            hooks=CandleStoreHooks(
                on_backfill_finished=lambda _key, outcome, _duration: finished.append(outcome)
            ),
        )
        await store.load(_BTC, _M1)

        outcome = await store.request_backfill(_BTC, _M1)

        assert outcome is BackfillOutcome.MERGED
        assert source.calls[1][3] == _bar(10).ts
        assert _minutes(store.current(_BTC, _M1).bars) == [8, 9, 10, 11]
        assert finished == [BackfillOutcome.MERGED]

    asyncio.run(_scenario())


def test_request_backfill_reports_exhausted_for_empty_page() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10)], []])
        store = CandleStore(source=source)
        await store.load(_BTC, _M1)

        assert await store.request_backfill(_BTC, _M1) is BackfillOutcome.EXHAUSTED
        assert store.state(_BTC, _M1) is TimelineState.LOADED

    asyncio.run(_scenario())


def test_request_backfill_failure_leaves_timeline_unchanged() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10)], SourceUnavailableError("down")])
        store = CandleStore(source=source)
        await store.load(_BTC, _M1)
        events: list[TimelineEventKind] = []
        store.subscribe(lambda event: events.append(event.kind))

        assert await store.request_backfill(_BTC, _M1) is BackfillOutcome.FAILED
        assert _minutes(store.current(_BTC, _M1).bars) == [10]
        assert store.state(_BTC, _M1) is TimelineState.LOADED
        assert events == [TimelineEventKind.BACKFILL_FAILED]

    asyncio.run(_scenario())


def test_request_backfill_is_skipped_when_not_loaded() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([])
        store = CandleStore(source=source)

        assert await store.request_backfill(_BTC, _M1) is BackfillOutcome.SKIPPED
        assert source.calls == []

    asyncio.run(_scenario())


def test_second_backfill_request_while_in_flight_is_skipped() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10)], [_bar(9)]], gated=True)
        store = CandleStore(source=source)
        loading = asyncio.create_task(store.load(_BTC, _M1))
        await _wait_calls(source, 1)
        source.gates[0].set()
        await loading

        first = asyncio.create_task(store.request_backfill(_BTC, _M1))
        await _wait_calls(source, 2)

        assert store.state(_BTC, _M1) is TimelineState.BACKFILLING
        assert await store.request_backfill(_BTC, _M1) is BackfillOutcome.SKIPPED

        source.gates[1].set()
        assert await first is BackfillOutcome.MERGED
        assert len(source.calls) == 2

    asyncio.run(_scenario())


def test_live_update_during_backfill_is_queued_then_replayed() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10), _bar(11)], [_bar(8), _bar(9)]], gated=True)
        store = CandleStore(source=source)
        loading = asyncio.create_task(store.load(_BTC, _M1))
        await _wait_calls(source, 1)
        source.gates[0].set()
        await loading

        backfill = asyncio.create_task(store.request_backfill(_BTC, _M1))
        await _wait_calls(source, 2)

        queued = store.merge_live(_BTC, _M1, [_bar(11, close=111.0), _bar(12)])

        assert queued is LiveMergeKind.QUEUED
        assert _minutes(store.current(_BTC, _M1).bars) == [10, 11]

        source.gates[1].set()
        assert await backfill is BackfillOutcome.MERGED

        timeline = store.current(_BTC, _M1)
        assert _minutes(timeline.bars) == [8, 9, 10, 11, 12]
        assert timeline.bars[3].close == 111.0

    asyncio.run(_scenario())


def test_before_merge_runs_before_backfilled_event() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10)], [_bar(9)]])
        store = CandleStore(source=source)
        await store.load(_BTC, _M1)
        order: list[str] = []
        store.subscribe(lambda event: order.append(event.kind.value))

        await store.request_backfill(_BTC, _M1, before_merge=lambda: order.append("capture"))

        assert order == ["capture", "backfilled"]

    asyncio.run(_scenario())


def test_discard_ignores_results_of_in_flight_fetches() -> None:
    async def _scenario() -> None:
        source = _FakeCandleSource([[_bar(10)], [_bar(9)]], gated=True)
        store = CandleStore(source=source)
        loading = asyncio.create_task(store.load(_BTC, _M1))
        await _wait_calls(source, 1)
        source.gates[0].set()
        await loading

        backfill = asyncio.create_task(store.request_backfill(_BTC, _M1))
        await _wait_calls(source, 2)

        events: list[TimelineEventKind] = []
        store.subscribe(lambda event: events.append(event.kind))
        assert store.discard(_BTC, _M1) is True

        source.gates[1].set()
        assert await backfill is BackfillOutcome.SKIPPED
        assert store.state(_BTC, _M1) is TimelineState.EMPTY
        assert store.current(_BTC, _M1).is_empty is True
        assert events == [TimelineEventKind.DISCARDED]
        assert store.discard(_BTC, _M1) is False

    asyncio.run(_scenario())


def test_keyed_subscription_only_sees_its_timeline() -> None:
    store = CandleStore(source=_FakeCandleSource([]))
    eth = InstrumentId.parse("KRW-ETH")
    seen: list[TimelineKey] = []
    store.subscribe(lambda event: seen.append(event.key), key=TimelineKey(_BTC, _M1))

    store.merge_live(_BTC, _M1, [_bar(1)])
    store.merge_live(
        eth,
        _M1,
        [
            CandleBar(
                instrument_id=eth,
                ts=UtcTimestamp(_BASE),
                open=1.0,
                high=1.0,
                low=1.0,
                close=1.0,
                acc_trade_price=1.0,
                acc_trade_volume=1.0,
            )
        ],
    )

    assert seen == [TimelineKey(_BTC, _M1)]
    assert set(store.keys()) == {TimelineKey(_BTC, _M1), TimelineKey(eth, _M1)}


def test_page_size_must_respect_exchange_limit() -> None:
    with pytest.raises(ValueError):
        CandleStore(source=_FakeCandleSource([]), page_size=201)
