"""Storage interfaces for refresher bookkeeping."""

from __future__ import annotations

from typing import Any, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None:
        """Return the stored value for key, or None when absent."""

    def put(self, key: str, value: Any) -> None:
        """Persist value under key; durable once this returns."""

    def remove(self, key: str) -> None:
        """Delete key if present."""
