"""Scheduler contracts and helpers."""

from .base import ContactProvider, ProfileFetcher
from .executor import BoundedTaskPool, FetchExecutor
from .refresher import (
    IterationResult,
    RefreshScheduler,
    SchedulerState,
    run_refresh_pass,
)
from .selection import CandidateSelector, select_candidates
from .throttle import STORAGE_KEY, ThrottleGate

__all__ = [
    "BoundedTaskPool",
    "CandidateSelector",
    "ContactProvider",
    "FetchExecutor",
    "IterationResult",
    "ProfileFetcher",
    "RefreshScheduler",
    "STORAGE_KEY",
    "SchedulerState",
    "ThrottleGate",
    "run_refresh_pass",
    "select_candidates",
]
