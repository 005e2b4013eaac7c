"""Cooldown bookkeeping between triggered refresh passes."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
import logging
import math
from typing import Any

from profile_refresher.errors import SchedulerError
from profile_refresher.logging import LOG_PREFIX
from profile_refresher.store.base import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "lastAttemptedToRefreshProfilesAt"
MIN_ELAPSED_DURATION_TO_REFRESH_AGAIN = timedelta(hours=12)

NowFn = Callable[[], datetime]


class ThrottleGate:
    """Answer whether a new pass may start, using one persisted timestamp.

    The timestamp is stored as epoch milliseconds. The gate only spaces out
    pass triggers; it says nothing about how long a pass takes.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        min_interval: timedelta = MIN_ELAPSED_DURATION_TO_REFRESH_AGAIN,
        now_fn: NowFn | None = None,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        if min_interval < timedelta(0):
            raise SchedulerError("min_interval must be >= 0.")
        self._store = store
        self._min_interval = min_interval
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._storage_key = storage_key

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def min_interval(self) -> timedelta:
        return self._min_interval

    def time_remaining(self) -> timedelta:
        stored = self._load_stored_ms()
        if stored is None:
            return timedelta(0)
        planned = stored + self._min_interval.total_seconds() * 1000
        remaining_ms = max(0.0, planned - _to_epoch_ms(self._now()))
        return timedelta(milliseconds=remaining_ms)

    def mark_triggered(self) -> None:
        self._store.put(self._storage_key, _to_epoch_ms(self._now()))

    def last_triggered_at(self) -> datetime | None:
        stored = self._load_stored_ms()
        if stored is None:
            return None
        return datetime.fromtimestamp(stored / 1000, tz=timezone.utc)

    def reset(self) -> None:
        self._store.remove(self._storage_key)

    def _load_stored_ms(self) -> float | None:
        stored = self._store.get(self._storage_key)
        if stored is None:
            return None
        if _is_normal_number(stored):
            return float(stored)
        logger.warning(
            "%s: an invalid value was stored in %s (%r); treating it as absent",
            LOG_PREFIX,
            self._storage_key,
            stored,
        )
        return None


def _is_normal_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)
