"""recoilx: reference-counted atom/selector state graph for Python."""

from importlib.metadata import version as _version

__version__ = _version("recoilx")

from recoilx.types import (
    PENDING,
    AtomDefinition,
    MutatableSelectorDefinition,
    SelectorDefinition,
    StateKind,
)
from recoilx.errors import (
    ClosedAccessError,
    MissingStateRootError,
    ReadOnlyStateError,
    RecoilxError,
    Suspend,
)
from recoilx.atom import atom
from recoilx.selector import selector, mutable_selector
from recoilx.access import ReadAccess, WriteAccess
from recoilx.cell import ValueCell
from recoilx.stream import EventStream
from recoilx.state import State
from recoilx.usage import Usage
from recoilx.root import StateRoot, current_root, state_root, use
# persistence, query and textual NOT auto-imported; opt-in only

__all__ = [
    "PENDING",
    "StateKind",
    "AtomDefinition",
    "SelectorDefinition",
    "MutatableSelectorDefinition",
    "atom",
    "selector",
    "mutable_selector",
    "ReadAccess",
    "WriteAccess",
    "ValueCell",
    "EventStream",
    "State",
    "Usage",
    "StateRoot",
    "state_root",
    "current_root",
    "use",
    "RecoilxError",
    "MissingStateRootError",
    "ReadOnlyStateError",
    "ClosedAccessError",
    "Suspend",
]
