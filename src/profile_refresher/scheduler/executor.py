"""Bounded-concurrency profile fetching."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
import logging
from typing import Any

from profile_refresher.errors import SchedulerError
from profile_refresher.logging import LOG_PREFIX
from profile_refresher.models import Contact, PassOutcome
from profile_refresher.scheduler.base import ProfileFetcher

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_FETCH_TIMEOUT_SECONDS = 30 * 60

TaskFactory = Callable[[], Awaitable[Any]]


class BoundedTaskPool:
    """Semaphore-gated task spawner with a join barrier.

    Every spawned task is scheduled right away; the semaphore limits how many
    run at once. Each task gets its own timeout. A task that times out or
    raises is logged and counted, never propagated out of `join`.
    """

    def __init__(self, concurrency: int, *, timeout_seconds: float | None = None) -> None:
        if concurrency <= 0:
            raise SchedulerError("concurrency must be > 0.")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise SchedulerError("timeout_seconds must be > 0 when provided.")
        self._semaphore = asyncio.Semaphore(concurrency)
        self._timeout_seconds = timeout_seconds
        self._tasks: list[asyncio.Task[None]] = []
        self.timed_out = 0
        self.crashed = 0

    def spawn(self, factory: TaskFactory, *, label: str = "task") -> None:
        self._tasks.append(asyncio.ensure_future(self._run(factory, label)))

    async def join(self) -> None:
        while self._tasks:
            pending, self._tasks = self._tasks, []
            await asyncio.gather(*pending)

    async def _run(self, factory: TaskFactory, label: str) -> None:
        async with self._semaphore:
            try:
                await asyncio.wait_for(factory(), timeout=self._timeout_seconds)
            except asyncio.TimeoutError:
                self.timed_out += 1
                logger.error(
                    "%s: %s timed out after %ss and was abandoned",
                    LOG_PREFIX,
                    label,
                    self._timeout_seconds,
                )
            except Exception:
                self.crashed += 1
                logger.exception("%s: %s failed outside its own error handling", LOG_PREFIX, label)


class FetchExecutor:
    """Refresh each selected contact's profile with bounded parallelism."""

    def __init__(
        self,
        fetch_profile: ProfileFetcher,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        if concurrency <= 0:
            raise SchedulerError("concurrency must be > 0.")
        if timeout_seconds <= 0:
            raise SchedulerError("timeout_seconds must be > 0.")
        self._fetch_profile = fetch_profile
        self._concurrency = concurrency
        self._timeout_seconds = timeout_seconds

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def run(self, contacts: Iterable[Contact]) -> PassOutcome:
        """Fetch every contact and return attempted/succeeded counters.

        The selection is fully consumed before the first fetch starts, so any
        credential clearing it performs has already happened.
        """
        selected = list(contacts)
        pool = BoundedTaskPool(self._concurrency, timeout_seconds=self._timeout_seconds)
        counters = {"attempted": 0, "succeeded": 0}

        async def refresh(contact: Contact) -> None:
            logger.info("%s: refreshing profile for %s", LOG_PREFIX, contact.id_for_logging())
            counters["attempted"] += 1
            try:
                result = await self._fetch_profile(contact.service_id, contact.phone_number)
            except Exception as exc:
                logger.error(
                    "%s: failed to refresh profile for %s: %s",
                    LOG_PREFIX,
                    contact.id_for_logging(),
                    exc,
                    exc_info=True,
                )
                return
            if result is False:
                logger.warning(
                    "%s: fetch reported failure for %s", LOG_PREFIX, contact.id_for_logging()
                )
                return
            logger.info("%s: refreshed profile for %s", LOG_PREFIX, contact.id_for_logging())
            counters["succeeded"] += 1

        for contact in selected:
            pool.spawn(lambda contact=contact: refresh(contact), label=f"refresh of {contact.id_for_logging()}")
        await pool.join()

        return PassOutcome(
            attempted=counters["attempted"],
            succeeded=counters["succeeded"],
            timed_out=pool.timed_out,
        )
