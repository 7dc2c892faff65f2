"""StateRoot — the registry that owns live state and its reference counts.

Every live instance is keyed by its definition's identity. Consumers acquire
a definition under a usage token and release it when done; the last release
tears the instance down, remembers its value (unless volatile), runs its mount
cleanup and then releases everything the instance itself acquired. Nothing is
collected by the host GC.

A root is an explicit object. Hosts that want an ambient one bind it with
state_root(); module-level use() refuses to run without a bound root.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from recoilx import _anchor
from recoilx.access import WriteAccess
from recoilx.atom import create_atom
from recoilx.errors import ErrorReporter, MissingStateRootError, report_error
from recoilx.selector import create_selector
from recoilx.sleep import SleepCache
from recoilx.types import StateKind
from recoilx.usage import Usage

if TYPE_CHECKING:
    from recoilx.state import State
    from recoilx.types import MutatableStateDefinition, StateDefinition

logger = logging.getLogger("recoilx.root")

MOUNT_ERROR = "Exception in mount callback"
CLEANUP_ERROR = "Exception in mount cleanup"


class StateRoot:
    """Live instance registry plus sleep cache and error reporter.

    Usage:
        root = StateRoot(report=errors.append)
        with root.use(greeting) as usage:
            usage.value
    """

    def __init__(
        self,
        report: ErrorReporter | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._arena = _anchor.StateArena()
        self.sleep = SleepCache()
        self.on_error = report_error(report)
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    def get_loop(self) -> asyncio.AbstractEventLoop:
        """The loop async work is scheduled on. Raises outside a running loop."""
        return self._loop or asyncio.get_running_loop()

    # --- Registry queries ---

    def __len__(self) -> int:
        return len(self._arena)

    def __contains__(self, definition: StateDefinition) -> bool:
        return definition.key in self._arena.instances

    def state_of(self, definition: StateDefinition) -> State | None:
        return self._arena.instances.get(definition.key)

    def refs_of(self, definition: StateDefinition) -> frozenset[int]:
        return frozenset(self._arena.refs.get(definition.key, ()))

    def new_usage(self) -> int:
        return _anchor.new_id()

    # --- Acquire / release ---

    def acquire(self, definition: StateDefinition, usage: int) -> State:
        """Return the live instance for definition, creating it on first use.

        A definition acquiring itself (its own key as usage) is not counted.
        """
        state = self._arena.instances.get(definition.key)
        if state is None:
            state = self._create(definition)
        if usage != definition.key:
            self._arena.link(definition.key, usage)
        return state

    def release(self, key: int | StateDefinition, usage: int) -> None:
        """Drop one usage of key; the last one tears the instance down."""
        key = getattr(key, "key", key)
        if key not in self._arena.instances:
            return
        if self._arena.unlink(key, usage):
            return
        self._teardown(key)

    def get(self, definition: StateDefinition, usage: int) -> Any:
        return self.acquire(definition, usage).value

    def set(self, definition: MutatableStateDefinition, usage: int, change: Any) -> None:
        self.acquire(definition, usage).dispatch(change)

    def use(self, definition: StateDefinition) -> Usage:
        """Acquire definition under a fresh usage token."""
        return Usage(self, definition)

    # --- Lifecycle internals ---

    def _create(self, definition: StateDefinition) -> State:
        key = definition.key
        try:
            if definition.kind is StateKind.ATOM:
                state = create_atom(definition, self)
            else:
                state = create_selector(definition, self)
        except Exception:
            # Nothing is registered; give back what the read already acquired.
            self._release_holds(key)
            raise

        self._arena.instances[key] = state
        self._arena.refs[key] = set()
        logger.debug("Mounted %r", definition)
        if definition.on_mount is not None:
            self._mount(definition)
        return state

    def _mount(self, definition: StateDefinition) -> None:
        access = WriteAccess(self, definition.key)
        try:
            cleanup = definition.on_mount(access)
        except Exception as error:
            self.on_error(error, MOUNT_ERROR)
            cleanup = None
        if inspect.isawaitable(cleanup):
            cleanup = self._schedule_mount(cleanup)
        self._arena.cleanups[definition.key] = (access, cleanup)

    def _schedule_mount(self, awaitable: Any) -> asyncio.Future | None:
        if not asyncio.isfuture(awaitable):
            try:
                awaitable = asyncio.ensure_future(awaitable, loop=self.get_loop())
            except RuntimeError as error:
                # No loop to run it on; the instance stays mounted without a cleanup.
                close = getattr(awaitable, "close", None)
                if close is not None:
                    close()
                self.on_error(error, MOUNT_ERROR)
                return None
        awaitable.add_done_callback(self._mount_settled)
        return awaitable

    def _mount_settled(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.on_error(error, MOUNT_ERROR)

    def _teardown(self, key: int) -> None:
        arena = self._arena
        state = arena.instances.pop(key)
        del arena.refs[key]
        state._teardown()
        if not state.volatile:
            self.sleep.remember(key, state.value)

        access, cleanup = arena.cleanups.pop(key, (None, None))
        if access is not None:
            access.close()
        self._run_cleanup(cleanup)
        logger.debug("Unmounted %r", state.definition)

        self._release_holds(key)

    def _release_holds(self, key: int) -> None:
        for dependency_key in list(self._arena.holds.pop(key, ())):
            self.release(dependency_key, key)

    def _run_cleanup(self, cleanup: Any) -> None:
        if cleanup is None:
            return
        if asyncio.isfuture(cleanup):
            if cleanup.done():
                self._finish_cleanup(cleanup)
            else:
                cleanup.add_done_callback(self._finish_cleanup)
            return
        self._call_cleanup(cleanup)

    def _finish_cleanup(self, future: asyncio.Future) -> None:
        # Errors were already reported by _mount_settled.
        if future.cancelled() or future.exception() is not None:
            return
        self._call_cleanup(future.result())

    def _call_cleanup(self, cleanup: Any) -> None:
        if not callable(cleanup):
            return
        try:
            cleanup()
        except Exception as error:
            self.on_error(error, CLEANUP_ERROR)

    def __repr__(self) -> str:
        return f"StateRoot({len(self)} live)"


# --- Ambient root ---

_current_root: contextvars.ContextVar[StateRoot | None] = contextvars.ContextVar(
    "current_root", default=None
)


def current_root() -> StateRoot | None:
    return _current_root.get()


@contextmanager
def state_root(root: StateRoot | None = None, **options: Any) -> Iterator[StateRoot]:
    """Bind root (or a new StateRoot(**options)) as the ambient root.

    Usage:
        with state_root(report=errors.append) as root:
            counter = use(counter_atom)
    """
    if root is None:
        root = StateRoot(**options)
    token = _current_root.set(root)
    try:
        yield root
    finally:
        _current_root.reset(token)


def use(definition: StateDefinition) -> Usage:
    """Acquire definition from the ambient root."""
    root = _current_root.get()
    if root is None:
        raise MissingStateRootError()
    return root.use(definition)
