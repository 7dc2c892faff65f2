"""Dependency tracking — records what a selector reads on its first evaluation.

The tracking facade is only handed to the first read. Every state it touches
is acquired under the selector's own key and added to the dependency set;
later reads get a plain ReadAccess, so the set stops growing once the first
evaluation is over. For an async read the first evaluation lasts until its
coroutine finishes, so reads made after an await are tracked too. A selector
that switches branches on a later read keeps its original subscriptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from recoilx.access import ReadAccess

if TYPE_CHECKING:
    from recoilx.root import StateRoot
    from recoilx.state import State
    from recoilx.types import StateDefinition


class TrackingReadAccess(ReadAccess):
    """ReadAccess that remembers every live instance it returned."""

    __slots__ = ("dependencies", "on_track")

    def __init__(self, root: StateRoot, usage: int) -> None:
        super().__init__(root, usage)
        self.dependencies: dict[int, State] = {}
        self.on_track: Callable[[State], None] | None = None

    def get_state(self, definition: StateDefinition) -> State:
        state = super().get_state(definition)
        if state.key != self._usage and state.key not in self.dependencies:
            self.dependencies[state.key] = state
            if self.on_track is not None:
                self.on_track(state)
        return state
