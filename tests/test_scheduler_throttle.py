"""Throttle gate cooldown arithmetic and integrity handling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

import pytest

from profile_refresher.errors import SchedulerError
from profile_refresher.scheduler.throttle import STORAGE_KEY, ThrottleGate
from profile_refresher.store.memory import MemoryKeyValueStore
from profile_refresher.testing.time_control import fixed_now

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_time_remaining_is_zero_without_stored_timestamp() -> None:
    gate = ThrottleGate(MemoryKeyValueStore(), now_fn=fixed_now(NOW))
    assert gate.time_remaining() == timedelta(0)
    assert gate.last_triggered_at() is None


def test_time_remaining_counts_down_from_stored_timestamp() -> None:
    store = MemoryKeyValueStore({STORAGE_KEY: _ms(NOW - timedelta(hours=1))})
    gate = ThrottleGate(store, now_fn=fixed_now(NOW))
    assert gate.time_remaining() == timedelta(hours=11)


def test_time_remaining_never_goes_negative() -> None:
    store = MemoryKeyValueStore({STORAGE_KEY: _ms(NOW - timedelta(hours=13))})
    gate = ThrottleGate(store, now_fn=fixed_now(NOW))
    assert gate.time_remaining() == timedelta(0)


def test_time_remaining_accepts_float_timestamps() -> None:
    store = MemoryKeyValueStore({STORAGE_KEY: float(_ms(NOW - timedelta(hours=6)))})
    gate = ThrottleGate(store, now_fn=fixed_now(NOW))
    assert gate.time_remaining() == timedelta(hours=6)


@pytest.mark.parametrize("stored", ["yesterday", float("nan"), float("inf"), True, {"at": 1}])
def test_invalid_stored_value_is_treated_as_absent(stored: object, caplog: pytest.LogCaptureFixture) -> None:
    gate = ThrottleGate(MemoryKeyValueStore({STORAGE_KEY: stored}), now_fn=fixed_now(NOW))

    with caplog.at_level(logging.WARNING, logger="profile_refresher"):
        remaining = gate.time_remaining()

    assert remaining == timedelta(0)
    assert "invalid value" in caplog.text


def test_mark_triggered_persists_epoch_milliseconds() -> None:
    store = MemoryKeyValueStore()
    gate = ThrottleGate(store, now_fn=fixed_now(NOW))

    gate.mark_triggered()

    assert store.get(STORAGE_KEY) == _ms(NOW)
    assert gate.time_remaining() == timedelta(hours=12)
    assert gate.last_triggered_at() == NOW


def test_custom_interval_and_key() -> None:
    store = MemoryKeyValueStore()
    gate = ThrottleGate(store, min_interval=timedelta(minutes=5), now_fn=fixed_now(NOW), storage_key="other")

    gate.mark_triggered()

    assert "other" in store
    assert STORAGE_KEY not in store
    assert gate.time_remaining() == timedelta(minutes=5)


def test_reset_removes_stored_timestamp() -> None:
    store = MemoryKeyValueStore({STORAGE_KEY: _ms(NOW)})
    gate = ThrottleGate(store, now_fn=fixed_now(NOW))

    gate.reset()

    assert store.get(STORAGE_KEY) is None
    assert gate.time_remaining() == timedelta(0)


def test_negative_interval_is_rejected() -> None:
    with pytest.raises(SchedulerError, match="min_interval"):
        ThrottleGate(MemoryKeyValueStore(), min_interval=timedelta(seconds=-1))


def _ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)
