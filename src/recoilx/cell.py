"""Value cells — the hot container behind every live state.

A ValueCell holds the current value and a list of listeners. set() notifies
synchronously, before it returns. The cell also hands out the awaitable a
suspended reader waits on while the value is still PENDING.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Generic, TypeVar

from recoilx.types import PENDING

T = TypeVar("T")

Listener = Callable[[T], None]


class ValueCell(Generic[T]):
    """Current value plus change listeners."""

    __slots__ = ("_value", "_listeners", "_ready")

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: list[Listener] = []
        self._ready: asyncio.Future | None = None

    @property
    def value(self) -> T:
        return self._value

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Write a new value and notify every listener."""
        self._value = value
        if value is not PENDING and self._ready is not None:
            ready, self._ready = self._ready, None
            if not ready.done():
                ready.set_result(value)
        for listener in list(self._listeners):
            listener(value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    @property
    def pending(self) -> bool:
        return self._value is PENDING

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def when_ready(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Future:
        """Future resolving with the first non-pending value.

        The same future is returned until it resolves.
        """
        if self._ready is not None and not self._ready.cancelled():
            return self._ready
        loop = loop or asyncio.get_running_loop()
        future = loop.create_future()
        if self._value is not PENDING:
            future.set_result(self._value)
            return future
        self._ready = future
        return future

    def cancel_ready(self) -> None:
        """Cancel the pending when_ready() future, if any."""
        ready, self._ready = self._ready, None
        if ready is not None and not ready.done():
            ready.cancel()

    def __repr__(self) -> str:
        return f"ValueCell({self._value!r})"
