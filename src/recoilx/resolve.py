"""Async resolution — turn whatever a selector read returned into cell writes.

A read may return a plain value, an awaitable, or a push stream. Plain values
are written immediately. Awaitables and streams become the instance's single
active source; starting a new source (or writing a plain value) supersedes
the previous one, so a late result from an old source never clobbers a newer
value.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Callable

from recoilx.cell import ValueCell
from recoilx.stream import PushStream

INITIAL_ERROR = "Exception while resolving initial selector value"
RECOMPUTE_ERROR = "Exception in selector value stream"


def is_stream(value: object) -> bool:
    return isinstance(value, PushStream) and not inspect.isawaitable(value)


def is_async(value: object) -> bool:
    return is_stream(value) or inspect.isawaitable(value)


class ValueResolver:
    """Feeds one cell from successive read results."""

    __slots__ = ("_cell", "_on_error", "_get_loop", "_active", "_dispose_stream", "_closed")

    def __init__(
        self,
        cell: ValueCell,
        on_error: Callable[[object, str], None],
        get_loop: Callable[[], asyncio.AbstractEventLoop],
    ) -> None:
        self._cell = cell
        self._on_error = on_error
        self._get_loop = get_loop
        self._active: object = None
        self._dispose_stream: Callable[[], None] | None = None
        self._closed = False

    @property
    def in_flight(self) -> object:
        """The source currently allowed to write, if any."""
        return self._active

    def resolve(self, result: object, *, initial: bool = False) -> None:
        if self._closed:
            return
        self._drop_stream()
        tag = INITIAL_ERROR if initial else RECOMPUTE_ERROR

        if is_stream(result):
            token = object()
            self._active = token
            self._dispose_stream = result.subscribe(
                lambda value: self._push(token, value),
                lambda error: self._fail(token, error, tag),
            )
        elif inspect.isawaitable(result):
            if asyncio.isfuture(result):
                future = result
            else:
                future = asyncio.ensure_future(result, loop=self._get_loop())
            self._active = future
            future.add_done_callback(lambda done: self._settle(done, tag))
        else:
            self._active = None
            self._cell.set(result)

    def close(self) -> None:
        """Ignore every result that arrives from now on."""
        self._closed = True
        self._active = None
        self._drop_stream()

    def _push(self, token: object, value: object) -> None:
        if token is self._active and not self._closed:
            self._cell.set(value)

    def _fail(self, token: object, error: object, tag: str) -> None:
        if token is self._active and not self._closed:
            self._on_error(error, tag)

    def _settle(self, future: asyncio.Future, tag: str) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if future is not self._active or self._closed:
            return  # superseded by a newer read
        self._active = None
        if error is not None:
            self._on_error(error, tag)
            return
        self._cell.set(future.result())

    def _drop_stream(self) -> None:
        if self._dispose_stream is not None:
            dispose, self._dispose_stream = self._dispose_stream, None
            dispose()
