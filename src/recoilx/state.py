"""Live state — the single runtime object behind a definition.

A State exists while at least one usage holds its definition in a root. All
usages share it. Hosts read `value` synchronously, subscribe for changes, or
use read()/wait() to honor the suspension contract.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from recoilx.cell import ValueCell
from recoilx.errors import ReadOnlyStateError, Suspend
from recoilx.types import PENDING, StateKind

if TYPE_CHECKING:
    from recoilx.root import StateRoot
    from recoilx.types import StateDefinition

T = TypeVar("T")


class State(Generic[T]):
    """Shared live instance: a value cell plus what it was built from."""

    __slots__ = ("definition", "cell", "dependencies", "_root", "_dispatch", "_teardown_fns")

    def __init__(
        self,
        definition: StateDefinition,
        cell: ValueCell[T],
        root: StateRoot,
        *,
        dispatch: Callable[[Any], None] | None = None,
        dependencies: dict[int, State] | None = None,
    ) -> None:
        self.definition = definition
        self.cell = cell
        self.dependencies: dict[int, State] = {} if dependencies is None else dependencies
        self._root = root
        self._dispatch = dispatch
        self._teardown_fns: list[Callable[[], None]] = []

    @property
    def key(self) -> int:
        return self.definition.key

    @property
    def kind(self) -> StateKind:
        return self.definition.kind

    @property
    def debug_label(self) -> str | None:
        return self.definition.debug_label

    @property
    def volatile(self) -> bool:
        return self.definition.volatile

    @property
    def mutable(self) -> bool:
        return self._dispatch is not None

    @property
    def value(self) -> T:
        """Current value, PENDING included."""
        return self.cell.value

    @property
    def pending(self) -> bool:
        return self.cell.pending

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        return self.cell.subscribe(listener)

    def read(self) -> T:
        """Current value, or raise Suspend while it is still PENDING."""
        value = self.cell.value
        if value is PENDING:
            raise Suspend(self.cell.when_ready(self._root.loop), self.debug_label)
        return value

    async def wait(self) -> T:
        """Await the first non-pending value.

        Raises CancelledError if the instance is torn down first.
        """
        value = self.cell.value
        if value is PENDING:
            value = await asyncio.shield(self.cell.when_ready(self._root.loop))
        return value

    def dispatch(self, change: Any) -> None:
        if self._dispatch is None:
            raise ReadOnlyStateError(f"{self.definition!r} has no write function")
        self._dispatch(change)

    def on_teardown(self, fn: Callable[[], None]) -> None:
        self._teardown_fns.append(fn)

    def _teardown(self) -> None:
        fns, self._teardown_fns = self._teardown_fns, []
        for fn in fns:
            fn()
        # Suspended readers of a torn-down instance get CancelledError.
        self.cell.cancel_ready()

    def __repr__(self) -> str:
        label = self.debug_label or self.key
        return f"State({self.kind.value}:{label}, value={self.cell.value!r})"
