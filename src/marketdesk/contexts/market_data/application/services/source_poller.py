from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

from marketdesk.contexts.market_data.domain.errors import ErrorKind, error_kind_of

log = logging.getLogger(__name__)

T = TypeVar("T")


class PollOutcome(str, Enum):
    APPLIED = "applied"
    SUPERSEDED = "superseded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class SourcePollerHooks:
    """
    Optional lifecycle callbacks for one source poller.

    Parameters:
    - on_poll_started: callback with `(source)` before the fetch is issued.
    - on_poll_succeeded: callback with `(source, duration_seconds)` after a successful fetch.
    - on_poll_failed: callback with `(source, kind, duration_seconds)` after a failed fetch.

    Assumptions/Invariants:
    - Callbacks are lightweight and non-blocking.
    """

    on_poll_started: Callable[[str], None] | None = None
    on_poll_succeeded: Callable[[str, float], None] | None = None
    on_poll_failed: Callable[[str, ErrorKind, float], None] | None = None


class SourcePoller(Generic[T]):
    """
    Periodic fetcher for one market data source with last-successful-result-wins semantics.

    Parameters:
    - name: source name used in logs/metrics.
    - fetch: blocking zero-argument call returning one source result.
    - apply: synchronous consumer of a successful result (runs on the event loop).
    - interval_s: delay between polls.
    - on_failure: optional synchronous consumer of a classified failure.
    - ready: optional predicate; a poll is skipped while it returns False.
    - hooks: optional metrics callbacks.

    Assumptions/Invariants:
    - Every poll gets an increasing issue number when it starts.
    - A result is applied only if it was issued after the last applied result, so a slow
      older response never overwrites a newer one.
    - A failure never discards the last applied result; failures issued before the last
      applied success are not reported.
    - `fetch` runs in a worker thread; `apply` and `on_failure` run on the event loop.
    """

    def __init__(
        self,
        *,
        name: str,
        fetch: Callable[[], T],
        apply: Callable[[T], object],
        interval_s: float,
        on_failure: Callable[[ErrorKind], object] | None = None,
        ready: Callable[[], bool] | None = None,
        hooks: SourcePollerHooks | None = None,
    ) -> None:
        """
        Initialize poller state and validate constructor arguments.

        Parameters:
        - name: source name.
        - fetch: blocking fetch callable.
        - apply: result consumer.
        - interval_s: poll interval in seconds.
        - on_failure: failure consumer.
        - ready: poll precondition.
        - hooks: optional callbacks.

        Returns:
        - None.

        Assumptions/Invariants:
        - `interval_s` must be positive.

        Errors/Exceptions:
        - Raises `ValueError` on invalid arguments.

        Side effects:
        - None.
        """
        if not name.strip():
            raise ValueError("SourcePoller requires non-empty name")
        if fetch is None:  # type: ignore[truthy-bool]
            raise ValueError("SourcePoller requires fetch")
        if apply is None:  # type: ignore[truthy-bool]
            raise ValueError("SourcePoller requires apply")
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")

        self._name = name
        self._fetch = fetch
        self._apply = apply
        self._interval_s = interval_s
        self._on_failure = on_failure
        self._ready = ready
        self._hooks = hooks if hooks is not None else SourcePollerHooks()

        self._issued_seq = 0
        self._applied_seq = 0
        self._last_error: ErrorKind | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def last_error(self) -> ErrorKind | None:
        return self._last_error

    @property
    def has_result(self) -> bool:
        return self._applied_seq > 0

    async def poll_once(self) -> PollOutcome:
        """
        Issue one fetch and apply its result if it is still the newest.

        Parameters:
        - None.

        Returns:
        - Outcome of this poll.

        Assumptions/Invariants:
        - Several polls of the same source may be in flight at once (periodic loop plus
          manual refresh); the issue-number rule orders their effects.

        Errors/Exceptions:
        - None. Fetch failures are classified, logged and reported through `on_failure`.

        Side effects:
        - Runs `fetch` in a worker thread, then `apply` or `on_failure` on the loop.
        """
        if self._ready is not None and not self._ready():
            return PollOutcome.SKIPPED

        self._issued_seq += 1
        seq = self._issued_seq
        loop = asyncio.get_running_loop()
        started = loop.time()
        _emit_started(self._hooks.on_poll_started, self._name)

        try:
            result = await asyncio.to_thread(self._fetch)
        except Exception as exc:  # noqa: BLE001
            duration = max(loop.time() - started, 0.0)
            kind = error_kind_of(exc)
            _emit_failed(self._hooks.on_poll_failed, self._name, kind, duration)
            if seq < self._applied_seq:
                log.debug("dropping superseded failure of %s (seq=%s)", self._name, seq)
                return PollOutcome.SUPERSEDED
            log.warning("poll of %s failed (%s): %s", self._name, kind.value, exc)
            self._last_error = kind
            if self._on_failure is not None:
                self._on_failure(kind)
            return PollOutcome.FAILED

        duration = max(loop.time() - started, 0.0)
        _emit_succeeded(self._hooks.on_poll_succeeded, self._name, duration)
        if seq <= self._applied_seq:
            log.debug("dropping superseded result of %s (seq=%s)", self._name, seq)
            return PollOutcome.SUPERSEDED

        self._applied_seq = seq
        self._last_error = None
        self._apply(result)
        return PollOutcome.APPLIED

    async def run(self, stop_event: asyncio.Event, *, poll_immediately: bool = True) -> None:
        """
        Poll until shutdown.

        Parameters:
        - stop_event: cooperative shutdown event.
        - poll_immediately: run the first poll before waiting one interval.

        Returns:
        - None.

        Assumptions/Invariants:
        - Polls of this loop never overlap each other.

        Errors/Exceptions:
        - None. Unexpected errors from `apply` are logged and the loop continues.

        Side effects:
        - Invokes `poll_once` every `interval_s` seconds.
        """
        if poll_immediately and not stop_event.is_set():
            await self._run_once()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_s)
            except TimeoutError:
                await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self.poll_once()
        except Exception:  # noqa: BLE001
            log.exception("source poller %s failed to apply result", self._name)


def _emit_started(callback: Callable[[str], None] | None, name: str) -> None:
    if callback is None:
        return
    callback(name)


def _emit_succeeded(callback: Callable[[str, float], None] | None, name: str, duration: float) -> None:  # noqa: E501
    if callback is None:
        return
    callback(name, duration)


def _emit_failed(
    callback: Callable[[str, ErrorKind, float], None] | None,
    name: str,
    kind: ErrorKind,
    duration: float,
) -> None:
    if callback is None:
        return
    callback(name, kind, duration)
