"""Queries — keyed async fetches cached in volatile atoms.

Opt-in. Each query key gets its own volatile atom, found through a registry
atom, so every consumer of a key shares one result and one running request.
A request starts when none is running and the last result is older than ttl.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

from recoilx.atom import atom
from recoilx.errors import RecoilxError, Suspend
from recoilx.root import StateRoot
from recoilx.types import PENDING, AtomDefinition

logger = logging.getLogger("recoilx.query")

T = TypeVar("T")

Fetcher = Callable[[str], Awaitable[T]]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class QueryState(Generic[T]):
    result: Any = PENDING  # PENDING or an Outcome
    timestamp: float | None = None
    running: asyncio.Future | None = None


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    data: T | None
    loading: bool
    error: BaseException | None


query_registry: AtomDefinition[dict[str, AtomDefinition], Any] = atom(
    dict, debug_label="query registry"
)


def _query_atom(key: str, initial_data: Any) -> AtomDefinition:
    result = PENDING if initial_data is None else Outcome(value=initial_data)
    return atom(QueryState(result=result), volatile=True, debug_label=key)


class Query(Generic[T]):
    """One consumer of a keyed query.

    Usage:
        async def fetch_todo(key):
            ...

        with Query(root, "todo/1", fetch_todo, ttl=5.0) as todo:
            todo.read_raw()  # QueryResult(data=None, loading=True, error=None)
            await todo.wait()
    """

    def __init__(
        self,
        root: StateRoot,
        key: str,
        fetcher: Fetcher[T],
        *,
        ttl: float = 5.0,
        initial_data: T | None = None,
    ) -> None:
        self.root = root
        self.key = key
        self.ttl = ttl
        self._fetcher = fetcher
        self._registry = root.use(query_registry)
        queries = self._registry.value
        definition = queries.get(key)
        if definition is None:
            definition = _query_atom(key, initial_data)
            queries[key] = definition
        self.definition = definition
        try:
            self._usage = root.use(definition)
        except Exception:
            self._registry.release()
            raise

    @property
    def state(self) -> QueryState[T]:
        return self._usage.value

    def read(self) -> T:
        """The fetched value; raises Suspend while loading and the fetch error on failure."""
        self._start_if_necessary()
        state = self.state
        if state.result is PENDING:
            if state.running is not None:
                raise Suspend(state.running, self.key)
            raise RecoilxError(f"Failed to start request for {self.key}")
        if state.result.error is not None:
            raise state.result.error
        return state.result.value

    def read_raw(self) -> QueryResult[T]:
        self._start_if_necessary()
        result = self.state.result
        if result is PENDING:
            return QueryResult(data=None, loading=True, error=None)
        return QueryResult(data=result.value, loading=False, error=result.error)

    async def wait(self) -> T:
        """Await the first settled result, then read() it."""
        while True:
            try:
                return self.read()
            except Suspend as suspended:
                await asyncio.wait({suspended.future})

    def refresh(self) -> None:
        """Fetch again now unless a request is already running."""
        self._start(self.state)

    def release(self) -> None:
        self._usage.release()
        self._registry.release()

    def __enter__(self) -> Query[T]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def _start_if_necessary(self) -> None:
        state = self.state
        if state.timestamp is not None and time.monotonic() - state.timestamp < self.ttl:
            return
        self._start(state)

    def _start(self, state: QueryState[T]) -> None:
        if state.running is not None:
            return
        logger.debug("Fetching %s", self.key)
        request = asyncio.ensure_future(self._fetcher(self.key), loop=self.root.get_loop())
        self._usage.dispatch(replace(state, running=request))
        request.add_done_callback(self._settle)

    def _settle(self, request: asyncio.Future) -> None:
        if request.cancelled():
            outcome = Outcome(error=asyncio.CancelledError())
        elif request.exception() is not None:
            outcome = Outcome(error=request.exception())
        else:
            outcome = Outcome(value=request.result())

        live = self.root.state_of(self.definition)
        if live is None or live.value.running is not request:
            return  # every consumer left, or a newer instance owns the key
        live.dispatch(
            QueryState(result=outcome, timestamp=time.monotonic(), running=None)
        )
