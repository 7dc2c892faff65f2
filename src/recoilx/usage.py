"""Usage — one consumer's hold on a piece of state.

A host (a widget, a request handler, a test) creates one Usage per
attachment and releases it when it detaches. The Usage owns a usage token;
the live State it points to is shared with every other consumer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from recoilx.root import StateRoot
    from recoilx.state import State
    from recoilx.types import StateDefinition


class Usage:
    """Acquires on creation, releases on release() or context exit."""

    __slots__ = ("root", "definition", "token", "state", "_released", "_unsubscribers")

    def __init__(self, root: StateRoot, definition: StateDefinition) -> None:
        self.root = root
        self.definition = definition
        self.token = root.new_usage()
        self._released = False
        self._unsubscribers: list[Callable[[], None]] = []
        self.state: State = root.acquire(definition, self.token)

    @property
    def value(self) -> Any:
        return self.state.value

    @property
    def released(self) -> bool:
        return self._released

    def read(self) -> Any:
        """Value, or raise Suspend while pending."""
        return self.state.read()

    async def wait(self) -> Any:
        return await self.state.wait()

    def dispatch(self, change: Any) -> None:
        self.root.set(self.definition, self.token, change)

    def subscribe(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Listen for changes until unsubscribed or released."""
        unsubscribe = self.state.subscribe(listener)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.root.release(self.definition.key, self.token)

    def __enter__(self) -> Usage:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else repr(self.state.value)
        return f"Usage({self.definition!r}, {state})"
