"""Data anchor — plain Python structures that hold the live state graph.

Definitions and usages are identified by integer tokens. A StateArena stores
every live instance and the edges between them as dicts of token sets, so
teardown walks an explicit graph instead of relying on the host GC.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recoilx.state import State

# ID generation: shared by definition keys and usage tokens so they never collide
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


class StateArena:
    """Live instances of one root plus the reference edges between them."""

    __slots__ = ("instances", "refs", "holds", "cleanups")

    def __init__(self) -> None:
        self.instances: dict[int, State] = {}
        self.refs: dict[int, set[int]] = {}  # key -> usage tokens holding it
        self.holds: dict[int, dict[int, None]] = {}  # usage token -> keys it acquired, in order
        self.cleanups: dict[int, tuple] = {}  # key -> (mount access, cleanup or its future)

    def link(self, key: int, usage: int) -> None:
        self.refs[key].add(usage)
        self.holds.setdefault(usage, {})[key] = None

    def unlink(self, key: int, usage: int) -> set[int]:
        """Drop one edge. Returns the refs left on key."""
        held = self.holds.get(usage)
        if held is not None:
            held.pop(key, None)
            if not held:
                del self.holds[usage]
        refs = self.refs[key]
        refs.discard(usage)
        return refs

    def __len__(self) -> int:
        return len(self.instances)
