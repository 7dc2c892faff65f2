"""State definitions — immutable descriptions shared by every consumer.

A definition never touches a root. It only carries an identity token plus the
functions and options a root needs to build the live instance on first use.
Definitions compare by identity: two calls with the same arguments produce two
independent pieces of state.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, TypeVar, Union

from recoilx import _anchor

if TYPE_CHECKING:
    from recoilx.access import ReadAccess, WriteAccess

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]
Cleanup = Union[None, Disposer, Awaitable[Union[None, Disposer]]]
UpdateFunction = Callable[[Any, Any], Any]


class _Pending:
    """Sentinel type for "no value yet"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"


PENDING: Any = _Pending()


class StateKind(enum.Enum):
    ATOM = "atom"
    SELECTOR = "selector"
    MUTATABLE_SELECTOR = "mutatable_selector"


def replace_value(_current, change):
    return change


@dataclass(frozen=True, eq=False)
class AtomDefinition(Generic[T, U]):
    initial_value: T | Callable[[], T]
    update: Callable[[T, U], T] = replace_value
    debug_label: str | None = None
    volatile: bool = False
    on_mount: Callable[[WriteAccess], Cleanup] | None = None
    key: int = field(default_factory=_anchor.new_id)

    kind = StateKind.ATOM

    def read_initial_value(self) -> T:
        init = self.initial_value
        if callable(init):
            return init()
        return init

    def __repr__(self) -> str:
        return f"AtomDefinition({self.debug_label or self.key})"


@dataclass(frozen=True, eq=False)
class SelectorDefinition(Generic[T]):
    read: Callable[[ReadAccess], Any]
    debug_label: str | None = None
    volatile: bool = False
    on_mount: Callable[[WriteAccess], Cleanup] | None = None
    initial_value: Any = PENDING
    key: int = field(default_factory=_anchor.new_id)

    kind = StateKind.SELECTOR

    def __repr__(self) -> str:
        return f"SelectorDefinition({self.debug_label or self.key})"


@dataclass(frozen=True, eq=False)
class MutatableSelectorDefinition(Generic[T, U]):
    read: Callable[[ReadAccess], Any]
    write: Callable[[WriteAccess, U], None]
    debug_label: str | None = None
    volatile: bool = False
    on_mount: Callable[[WriteAccess], Cleanup] | None = None
    initial_value: Any = PENDING
    key: int = field(default_factory=_anchor.new_id)

    kind = StateKind.MUTATABLE_SELECTOR

    def __repr__(self) -> str:
        return f"MutatableSelectorDefinition({self.debug_label or self.key})"


StateDefinition = Union[AtomDefinition, SelectorDefinition, MutatableSelectorDefinition]
MutatableStateDefinition = Union[AtomDefinition, MutatableSelectorDefinition]
