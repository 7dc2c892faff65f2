"""Access facades — the only way definition logic reaches the engine.

Each facade is bound to one usage token. Every state it touches is acquired
under that token, so the root knows exactly what to release when the owner
goes away.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from recoilx.errors import ClosedAccessError

if TYPE_CHECKING:
    from recoilx.root import StateRoot
    from recoilx.state import State
    from recoilx.types import MutatableStateDefinition, StateDefinition

logger = logging.getLogger("recoilx.access")


class ReadAccess:
    """get() and get_state() scoped to one usage token."""

    __slots__ = ("_root", "_usage", "_closed")

    def __init__(self, root: StateRoot, usage: int) -> None:
        self._root = root
        self._usage = usage
        self._closed = False

    @property
    def usage(self) -> int:
        return self._usage

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def get_state(self, definition: StateDefinition) -> State:
        """The live instance behind definition."""
        self._check_open(definition)
        return self._root.acquire(definition, self._usage)

    def get(self, definition: StateDefinition) -> Any:
        """Current value of definition (may be PENDING)."""
        return self.get_state(definition).value

    def _check_open(self, definition: StateDefinition) -> None:
        if self._closed:
            raise ClosedAccessError(f"access to {definition!r} after unmount")


class WriteAccess(ReadAccess):
    """ReadAccess plus set()."""

    __slots__ = ()

    def set(self, definition: MutatableStateDefinition, change: Any) -> None:
        """Dispatch change to an atom or mutable selector."""
        if self._closed:
            logger.debug("Ignoring set(%r) through a closed access", definition)
            return
        self._root.set(definition, self._usage, change)
