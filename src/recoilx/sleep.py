"""Sleep cache — last values of non-volatile state across full unmounts."""

from __future__ import annotations

from recoilx.types import PENDING

MISSING = object()


class SleepCache:
    """identity key -> last known value."""

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[int, object] = {}

    def remember(self, key: int, value: object) -> None:
        if value is PENDING:
            return
        self._values[key] = value

    def recall(self, key: int, default: object = MISSING) -> object:
        return self._values.get(key, default)

    def forget(self, key: int) -> None:
        self._values.pop(key, None)

    def clear(self) -> None:
        self._values.clear()

    def __contains__(self, key: int) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
