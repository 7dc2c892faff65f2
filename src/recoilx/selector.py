"""Selectors — state derived from other state.

A selector's read function runs once with a tracking facade; whatever it
touched becomes its fixed dependency set. Each change of any dependency
re-runs read once with a plain facade. The result of any read may be a plain
value, an awaitable or a push stream; see recoilx.resolve.

Selectors are eager while mounted: they recompute on every dependency change
whether or not anyone reads them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar, overload

from recoilx._tracking import TrackingReadAccess
from recoilx.access import ReadAccess, WriteAccess
from recoilx.cell import ValueCell
from recoilx.resolve import RECOMPUTE_ERROR, ValueResolver, is_async
from recoilx.sleep import MISSING
from recoilx.state import State
from recoilx.types import (
    PENDING,
    Cleanup,
    MutatableSelectorDefinition,
    SelectorDefinition,
    StateKind,
)

if TYPE_CHECKING:
    from recoilx.root import StateRoot

T = TypeVar("T")
U = TypeVar("U")


@overload
def selector(
    read: Callable[[ReadAccess], Any],
    write: None = None,
    *,
    debug_label: str | None = None,
    volatile: bool = False,
    on_mount: Callable[[WriteAccess], Cleanup] | None = None,
    initial_value: Any = PENDING,
) -> SelectorDefinition: ...


@overload
def selector(
    read: Callable[[ReadAccess], Any],
    write: Callable[[WriteAccess, Any], None],
    *,
    debug_label: str | None = None,
    volatile: bool = False,
    on_mount: Callable[[WriteAccess], Cleanup] | None = None,
    initial_value: Any = PENDING,
) -> MutatableSelectorDefinition: ...


def selector(
    read,
    write=None,
    *,
    debug_label=None,
    volatile=False,
    on_mount=None,
    initial_value=PENDING,
):
    """Define a selector; with a write function it becomes mutable.

    initial_value is only shown while the first async read is in flight.

    Usage:
        name = atom("Ada")
        greeting = selector(lambda access: f"Hello {access.get(name)}")
    """
    if write is not None:
        return mutable_selector(
            read,
            write,
            debug_label=debug_label,
            volatile=volatile,
            on_mount=on_mount,
            initial_value=initial_value,
        )
    return SelectorDefinition(
        read=read,
        debug_label=debug_label,
        volatile=volatile,
        on_mount=on_mount,
        initial_value=initial_value,
    )


def mutable_selector(
    read: Callable[[ReadAccess], Any],
    write: Callable[[WriteAccess, U], None],
    *,
    debug_label: str | None = None,
    volatile: bool = False,
    on_mount: Callable[[WriteAccess], Cleanup] | None = None,
    initial_value: Any = PENDING,
) -> MutatableSelectorDefinition[Any, U]:
    """Define a selector whose set() is delegated to write(access, change)."""
    return MutatableSelectorDefinition(
        read=read,
        write=write,
        debug_label=debug_label,
        volatile=volatile,
        on_mount=on_mount,
        initial_value=initial_value,
    )


def create_selector(
    definition: SelectorDefinition | MutatableSelectorDefinition,
    root: StateRoot,
) -> State:
    """Run the tracking read and wire recomputation to every dependency.

    Exceptions from the first read propagate; the caller releases whatever
    the tracker acquired.
    """
    key = definition.key
    tracker = TrackingReadAccess(root, key)
    result = definition.read(tracker)

    if is_async(result):
        seed = MISSING
        if not definition.volatile:
            seed = root.sleep.recall(key)
        if seed is MISSING:
            seed = definition.initial_value
    else:
        seed = result

    cell = ValueCell(seed)
    resolver = ValueResolver(cell, root.on_error, root.get_loop)

    dispatch = None
    write_access = None
    if definition.kind is StateKind.MUTATABLE_SELECTOR:
        write_access = WriteAccess(root, key)

        def dispatch(change: Any) -> None:
            definition.write(write_access, change)

    state = State(definition, cell, root, dispatch=dispatch, dependencies=tracker.dependencies)

    if is_async(result):
        resolver.resolve(result, initial=True)

    read_access = ReadAccess(root, key)

    def recompute(_changed: Any) -> None:
        try:
            next_result = definition.read(read_access)
        except Exception as error:
            root.on_error(error, RECOMPUTE_ERROR)
            return
        resolver.resolve(next_result)

    def track(dependency: State) -> None:
        state.on_teardown(dependency.subscribe(recompute))

    for dependency in tracker.dependencies.values():
        track(dependency)
    tracker.on_track = track

    state.on_teardown(resolver.close)
    state.on_teardown(tracker.close)
    state.on_teardown(read_access.close)
    if write_access is not None:
        state.on_teardown(write_access.close)
    return state
