"""Atoms — independent, directly writable state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar

from recoilx.cell import ValueCell
from recoilx.sleep import MISSING
from recoilx.state import State
from recoilx.types import AtomDefinition, Cleanup, replace_value

if TYPE_CHECKING:
    from recoilx.access import WriteAccess
    from recoilx.root import StateRoot

T = TypeVar("T")
U = TypeVar("U")


def atom(
    initial_value: T | Callable[[], T],
    *,
    update: Callable[[T, U], T] = replace_value,
    debug_label: str | None = None,
    volatile: bool = False,
    on_mount: Callable[[WriteAccess], Cleanup] | None = None,
) -> AtomDefinition[T, U]:
    """Define an atom.

    initial_value may be a zero-argument factory; it runs once per
    instantiation that has nothing to resume from. update(current, change)
    returns the next value; the default replaces the value with the change.

    Usage:
        counter = atom(0, update=lambda n, delta: n + delta)

        with root.use(counter) as usage:
            usage.dispatch(2)
            usage.value  # 2
    """
    return AtomDefinition(
        initial_value=initial_value,
        update=update,
        debug_label=debug_label,
        volatile=volatile,
        on_mount=on_mount,
    )


def create_atom(definition: AtomDefinition, root: StateRoot) -> State:
    """Build the live instance, resuming from the sleep cache when allowed."""
    value: Any = MISSING
    if not definition.volatile:
        value = root.sleep.recall(definition.key)
    if value is MISSING:
        value = definition.read_initial_value()

    cell = ValueCell(value)

    def dispatch(change: Any) -> None:
        current = cell.value
        next_value = definition.update(current, change)
        if next_value is not current:
            cell.set(next_value)

    return State(definition, cell, root, dispatch=dispatch)
