from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

log = logging.getLogger(__name__)

E = TypeVar("E")


class Subscription:
    """
    Handle returned by `EventChannel.subscribe`.

    Parameters:
    - unsubscribe_callback: removes the listener from its channel.

    Assumptions/Invariants:
    - `unsubscribe()` is idempotent.
    """

    __slots__ = ("_unsubscribe", "_active")

    def __init__(self, unsubscribe_callback: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe_callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._unsubscribe()


class EventChannel(Generic[E]):
    """
    Synchronous fan-out of events to registered listeners.

    Parameters:
    - name: channel name used in logs.

    Assumptions/Invariants:
    - Listeners run on the publishing thread (the event loop thread), in subscription order.
    - A failing listener is logged and does not prevent delivery to the others.
    - Listeners may unsubscribe while an event is being delivered.
    """

    def __init__(self, *, name: str) -> None:
        self._name = name
        self._listeners: list[Callable[[E], None]] = []

    def subscribe(self, listener: Callable[[E], None]) -> Subscription:
        if listener is None:  # type: ignore[truthy-bool]
            raise ValueError("EventChannel.subscribe requires listener")
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return Subscription(_remove)

    def publish(self, event: E) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                log.exception("listener failed on channel %s", self._name)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
