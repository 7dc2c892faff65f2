"""Persisted atoms — atoms that load from and write through to a storage.

Opt-in. Built only on the public facades: the atom's mount callback loads the
stored value, then every distinct later value is serialized and written.
Stored entries are JSON documents {"version": ..., "value": <serialized>}.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar, Union

from recoilx.access import WriteAccess
from recoilx.atom import atom
from recoilx.errors import ErrorReporter, report_error
from recoilx.types import PENDING, AtomDefinition

logger = logging.getLogger("recoilx.persistence")

T = TypeVar("T")

StoredValue = Union[str, None]

DEFAULT_PREFIX = "__RECOILX_STATE"


class StorageAccess(Protocol):
    """Keyed string storage; any method may return an awaitable."""

    def get_item(self, key: str) -> StoredValue | Awaitable[StoredValue]: ...

    def set_item(self, key: str, value: str) -> None | Awaitable[None]: ...

    def remove_item(self, key: str) -> None | Awaitable[None]: ...


class MemoryStorage:
    """Dict-backed StorageAccess."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self.items: dict[str, str] = dict(items) if items else {}

    def get_item(self, key: str) -> StoredValue:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


def _deserialize(serialized: str, _version: int) -> Any:
    return json.loads(serialized)


def persisted_atom(
    key: str,
    storage: StorageAccess,
    *,
    version: int,
    fallback_value: T,
    serialize: Callable[[T], str] = json.dumps,
    deserialize: Callable[[str, int], T] = _deserialize,
    persistence_prefix: str = DEFAULT_PREFIX,
    report: ErrorReporter | None = None,
    debug_label: str | None = None,
) -> AtomDefinition[T, T]:
    """An atom that starts PENDING and mirrors itself into storage.

    On mount the stored value (or fallback_value when nothing is stored or
    loading fails) is set. deserialize receives the stored version so callers
    can migrate old payloads.
    """
    storage_key = f"{persistence_prefix}:{key}"
    on_error = report_error(report)
    pending_writes: set[asyncio.Task] = set()  # strong refs until each write finishes

    def write(value: T) -> None:
        try:
            payload = json.dumps({"version": version, "value": serialize(value)})
            result = storage.set_item(storage_key, payload)
        except Exception as error:
            on_error(error, f"failed to store value for {key}")
            return
        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as error:
                close = getattr(result, "close", None)
                if close is not None:
                    close()
                on_error(error, f"failed to store value for {key}")
                return
            task = loop.create_task(_await_write(result))
            pending_writes.add(task)
            task.add_done_callback(pending_writes.discard)

    async def _await_write(result: Awaitable[None]) -> None:
        try:
            await result
        except Exception as error:
            on_error(error, f"failed to store value for {key}")

    async def on_mount(access: WriteAccess) -> Callable[[], None] | None:
        if access.closed:
            return None  # unmounted before the mount task started
        live = access.get_state(state)
        loaded = False
        last_written: Any = PENDING

        def persist(value: Any) -> None:
            nonlocal last_written
            if not loaded or value is PENDING:
                return
            if value is last_written or value == last_written:
                return
            last_written = value
            write(value)

        unsubscribe = live.subscribe(persist)
        try:
            raw = storage.get_item(storage_key)
            if inspect.isawaitable(raw):
                raw = await raw
            if access.closed:
                return unsubscribe
            if raw is not None:
                stored = json.loads(raw)
                access.set(state, deserialize(stored["value"], stored["version"]))
            elif live.value is PENDING:
                access.set(state, fallback_value)
        except Exception as error:
            on_error(error, "failed to initialize persisted state from storage")
            access.set(state, fallback_value)

        last_written = live.value
        loaded = True
        logger.debug("Loaded %s from storage", storage_key)
        return unsubscribe

    state: AtomDefinition[T, T] = atom(
        PENDING,
        debug_label=f"{debug_label or key}:state",
        on_mount=on_mount,
    )
    return state
