"""In-process key-value store."""

from __future__ import annotations

from typing import Any


class MemoryKeyValueStore:
    """Dict-backed store for embedding and tests; nothing survives the process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._items: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._items.get(key)

    def put(self, key: str, value: Any) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items
