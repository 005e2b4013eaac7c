"""Routine profile refresh loop on top of throttle, selection and fetch helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging

from profile_refresher.config import RefreshConfig
from profile_refresher.diagnostics.events import JsonlEventLogger, build_refresh_pass_event
from profile_refresher.errors import DiagnosticsError
from profile_refresher.logging import LOG_PREFIX
from profile_refresher.models import Contact, PassOutcome
from profile_refresher.scheduler.base import ContactProvider, ProfileFetcher
from profile_refresher.scheduler.executor import FetchExecutor
from profile_refresher.scheduler.selection import CandidateSelector
from profile_refresher.scheduler.throttle import ThrottleGate
from profile_refresher.store.base import KeyValueStore

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[object]]

SKIPPED_TOO_SOON = "too_soon"
SKIPPED_MISSING_IDENTITY = "missing_local_identity"


class SchedulerState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    CHECK_IDENTITY = "check_identity"
    RUNNING = "running"
    BACKOFF = "backoff"


@dataclass(frozen=True)
class IterationResult:
    started_at: datetime
    waited_seconds: float
    outcome: PassOutcome | None = None
    skipped_reason: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.skipped_reason is None


async def run_refresh_pass(
    *,
    contacts: Sequence[Contact],
    local_identity_id: str,
    gate: ThrottleGate,
    executor: FetchExecutor,
    selector: CandidateSelector | None = None,
    now_fn: NowFn | None = None,
) -> PassOutcome | None:
    """Run one throttled refresh pass; return None when the cooldown has not elapsed."""
    logger.info("%s: starting", LOG_PREFIX)

    if gate.time_remaining().total_seconds() > 0:
        logger.info("%s: too soon to refresh. Doing nothing", LOG_PREFIX)
        return None

    logger.info("%s: updating last refresh time", LOG_PREFIX)
    gate.mark_triggered()

    resolved_selector = selector or CandidateSelector()
    now = (now_fn or _utcnow)()
    candidates = resolved_selector.select(contacts, local_identity_id, now=now)

    logger.info("%s: starting to refresh conversations", LOG_PREFIX)
    outcome = await executor.run(candidates)

    logger.info(
        "%s: successfully refreshed %d out of %d conversation(s)",
        LOG_PREFIX,
        outcome.succeeded,
        outcome.attempted,
    )
    return outcome


class RefreshScheduler:
    """Owned background loop that triggers a refresh pass whenever the cooldown allows.

    `start()` returns the loop task; `stop()` cancels it. The loop itself
    never exits on error: failures are logged and followed by a short delay.
    """

    def __init__(
        self,
        *,
        contact_provider: ContactProvider,
        store: KeyValueStore,
        fetch_profile: ProfileFetcher,
        config: RefreshConfig | None = None,
        now_fn: NowFn | None = None,
        sleep_fn: SleepFn | None = None,
        event_logger: JsonlEventLogger | None = None,
        run_id: str | None = None,
    ) -> None:
        resolved = config or RefreshConfig()
        self._contact_provider = contact_provider
        self._now = now_fn or _utcnow
        self._sleep = sleep_fn or asyncio.sleep
        self._retry_delay_seconds = resolved.retry_delay.total_seconds()
        self._gate = ThrottleGate(store, min_interval=resolved.cooldown, now_fn=self._now)
        self._selector = CandidateSelector(resolved)
        self._executor = FetchExecutor(
            fetch_profile,
            concurrency=resolved.concurrency,
            timeout_seconds=resolved.fetch_timeout_seconds,
        )
        self._event_logger = event_logger
        self._run_id = run_id or _new_run_id("refresh")
        self._state = SchedulerState.IDLE
        self._task: asyncio.Task[None] | None = None

    @property
    def gate(self) -> ThrottleGate:
        return self._gate

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start the loop on the running event loop, replacing any prior loop task."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self.run_forever(), name="routine-profile-refresh"
        )
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._state = SchedulerState.IDLE

    async def run_forever(self) -> None:
        while True:
            await self.run_iteration()

    async def run_iteration(self) -> IterationResult:
        """Wait out the cooldown, then run one pass or back off."""
        self._state = SchedulerState.WAITING
        try:
            remaining = self._gate.time_remaining()
        except Exception as exc:
            logger.exception("%s: could not read the last refresh time", LOG_PREFIX)
            return await self._fail(self._now(), 0.0, exc)
        waited_seconds = remaining.total_seconds()
        logger.info("%s: waiting for %dms", LOG_PREFIX, int(waited_seconds * 1000))
        await self._sleep(waited_seconds)
        started_at = self._now()

        self._state = SchedulerState.CHECK_IDENTITY
        try:
            local_identity_id = self._contact_provider.local_identity_id()
        except Exception as exc:
            logger.exception("%s: could not resolve our conversation id", LOG_PREFIX)
            return await self._fail(started_at, waited_seconds, exc)
        if not local_identity_id:
            logger.warning("%s: missing our conversation id", LOG_PREFIX)
            result = IterationResult(
                started_at=started_at,
                waited_seconds=waited_seconds,
                skipped_reason=SKIPPED_MISSING_IDENTITY,
            )
            self._emit(result)
            await self._backoff()
            return result

        self._state = SchedulerState.RUNNING
        try:
            outcome = await run_refresh_pass(
                contacts=self._contact_provider.list_all_contacts(),
                local_identity_id=local_identity_id,
                gate=self._gate,
                executor=self._executor,
                selector=self._selector,
                now_fn=self._now,
            )
        except Exception as exc:
            logger.exception("%s: failure", LOG_PREFIX)
            return await self._fail(started_at, waited_seconds, exc)

        result = IterationResult(
            started_at=started_at,
            waited_seconds=waited_seconds,
            outcome=outcome,
            skipped_reason=SKIPPED_TOO_SOON if outcome is None else None,
        )
        self._emit(result)
        self._state = SchedulerState.WAITING
        return result

    async def _fail(self, started_at: datetime, waited_seconds: float, exc: Exception) -> IterationResult:
        result = IterationResult(
            started_at=started_at,
            waited_seconds=waited_seconds,
            error=f"{type(exc).__name__}: {exc}",
        )
        self._emit(result)
        await self._backoff()
        return result

    async def _backoff(self) -> None:
        self._state = SchedulerState.BACKOFF
        await self._sleep(self._retry_delay_seconds)
        self._state = SchedulerState.WAITING

    def _emit(self, result: IterationResult) -> None:
        if self._event_logger is None:
            return
        try:
            event = build_refresh_pass_event(
                run_id=self._run_id,
                occurred_at=result.started_at,
                waited_seconds=result.waited_seconds,
                outcome=result.outcome,
                skipped_reason=result.skipped_reason,
                error=result.error,
            )
            self._event_logger.append(event)
        except (OSError, DiagnosticsError) as exc:
            logger.warning("%s: could not write refresh event: %s", LOG_PREFIX, exc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_run_id(prefix: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{prefix}-{stamp}"
