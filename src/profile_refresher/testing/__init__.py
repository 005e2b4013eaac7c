"""Test-only utilities for deterministic scheduler assertions."""

from .time_control import AsyncSleepRecorder, ManualClock, SleepBudgetExhausted, fixed_now

__all__ = [
    "AsyncSleepRecorder",
    "ManualClock",
    "SleepBudgetExhausted",
    "fixed_now",
]
