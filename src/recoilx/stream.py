"""Push-based event stream with operator chaining.

Minimal reactive stream: emit values or fail with an error, subscribe to
both, and compose with map/filter operators. Each operator returns a new
stream (immutable chain). dispose() tears down the entire chain.

A selector whose read returns a PushStream (an EventStream, or any object with
subscribe(on_next, on_error) and dispose()) takes its value from the stream's
pushes. Objects that only have subscribe(), like State or ValueCell, are
plain values.
"""

from __future__ import annotations

from typing import Callable, Generic, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]
ErrorCallback = Callable[[object], None]


@runtime_checkable
class PushStream(Protocol):
    def subscribe(self, on_next: Callable, on_error: ErrorCallback | None = None) -> Disposer: ...

    def dispose(self) -> None: ...


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Callable[[T], None], ErrorCallback | None]] = []
        self._children: list[EventStream] = []  # downstream streams for dispose
        self._disposed = False
        self._parent_disposer: Disposer | None = None

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self._disposed:
            return
        for on_next, _ in list(self._subscribers):
            on_next(value)

    def fail(self, error: object) -> None:
        """Push an error to every subscriber that handles errors."""
        if self._disposed:
            return
        for _, on_error in list(self._subscribers):
            if on_error is not None:
                on_error(error)

    def subscribe(
        self,
        on_next: Callable[[T], None],
        on_error: ErrorCallback | None = None,
    ) -> Disposer:
        """Register callbacks. Returns a function that removes them."""
        entry = (on_next, on_error)
        self._subscribers.append(entry)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(entry)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()
        child._parent_disposer = self._track_child(child)
        self.subscribe(lambda v: child.emit(fn(v)), child.fail)
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()
        child._parent_disposer = self._track_child(child)
        self.subscribe(lambda v: child.emit(v) if fn(v) else None, child.fail)
        return child

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _track_child(self, child: EventStream) -> Disposer:
        """Register child for dispose propagation. Returns a disposer that removes it."""
        self._children.append(child)

        def _remove() -> None:
            try:
                self._children.remove(child)
            except ValueError:
                pass

        return _remove
