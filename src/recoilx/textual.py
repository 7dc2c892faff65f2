"""Textual integration for recoilx. Opt-in — requires textual.

A binding is the host side of the engine: it acquires a usage when a widget
starts showing some state, pushes every non-pending value into the widget,
and releases the usage when the widget goes away.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable

from textual.css.query import NoMatches

from recoilx.root import StateRoot
from recoilx.types import PENDING, StateDefinition
from recoilx.usage import Usage

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


class Binding:
    """A usage whose changes drive a widget effect."""

    __slots__ = ("usage", "_app", "_effect", "_unsubscribe")

    def __init__(self, app, usage: Usage, effect: Callable[[Any], None]) -> None:
        self.usage = usage
        self._app = app
        self._effect = effect
        self._unsubscribe = usage.subscribe(self._guarded)

    @property
    def value(self) -> Any:
        return self.usage.value

    def _guarded(self, value: Any) -> None:
        if value is PENDING or not is_safe(self._app):
            return
        try:
            self._effect(value)
        except NoMatches:
            pass

    def dispose(self) -> None:
        self._unsubscribe()
        self.usage.release()


def bind(
    app,
    root: StateRoot,
    definition: StateDefinition,
    effect: Callable[[Any], None],
    *,
    fire_immediately: bool = True,
) -> Binding:
    """Run effect with each non-pending value of definition.

    Guards against firing during pause/not-running and swallows NoMatches
    from widget queries. Call dispose() (e.g. from the widget's on_unmount)
    to release the state.

    Usage:
        def on_mount(self):
            self._count = stx.bind(self.app, root, counter, self._show_count)

        def on_unmount(self):
            self._count.dispose()
    """
    binding = Binding(app, root.use(definition), effect)
    if fire_immediately:
        binding._guarded(binding.value)
    return binding
