"""Bounded-concurrency fetch execution and failure isolation."""

from __future__ import annotations

import asyncio
import logging

import pytest

from profile_refresher.errors import FetchError, SchedulerError
from profile_refresher.models import Contact, ContactKind
from profile_refresher.scheduler.executor import BoundedTaskPool, FetchExecutor


@pytest.mark.asyncio
async def test_all_fetches_succeed() -> None:
    seen: list[tuple[str | None, str | None]] = []

    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        seen.append((service_id, phone_number))

    outcome = await FetchExecutor(fetch).run([_contact("a"), _contact("b", phone="+15550001")])

    assert outcome.attempted == 2
    assert outcome.succeeded == 2
    assert outcome.failed == 0
    assert sorted(seen) == [("svc-a", None), ("svc-b", "+15550001")]


@pytest.mark.asyncio
async def test_failing_fetches_are_isolated(caplog: pytest.LogCaptureFixture) -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        raise RuntimeError(f"boom {service_id}")

    with caplog.at_level(logging.ERROR, logger="profile_refresher"):
        outcome = await FetchExecutor(fetch).run([_contact(f"c{index}") for index in range(10)])

    assert outcome.attempted == 10
    assert outcome.succeeded == 0
    assert outcome.failed == 10
    assert "failed to refresh profile" in caplog.text


@pytest.mark.asyncio
async def test_one_failure_does_not_affect_others() -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        if service_id == "svc-bad":
            raise FetchError("bad contact")
        await asyncio.sleep(0)

    outcome = await FetchExecutor(fetch).run([_contact("ok1"), _contact("bad"), _contact("ok2")])

    assert outcome.attempted == 3
    assert outcome.succeeded == 2


@pytest.mark.asyncio
async def test_false_return_counts_as_failure() -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> bool:
        return service_id != "svc-no"

    outcome = await FetchExecutor(fetch).run([_contact("yes"), _contact("no")])

    assert outcome.attempted == 2
    assert outcome.succeeded == 1


@pytest.mark.asyncio
async def test_at_most_five_fetches_run_at_once() -> None:
    active = 0
    peak = 0

    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    outcome = await FetchExecutor(fetch).run([_contact(f"c{index}") for index in range(12)])

    assert peak == 5
    assert outcome.attempted == 12
    assert outcome.succeeded == 12


@pytest.mark.asyncio
async def test_custom_concurrency_is_honored() -> None:
    active = 0
    peak = 0

    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    executor = FetchExecutor(fetch, concurrency=2)
    await executor.run([_contact(f"c{index}") for index in range(6)])

    assert executor.concurrency == 2
    assert peak == 2


@pytest.mark.asyncio
async def test_slow_fetch_times_out_and_is_not_counted_as_success(caplog: pytest.LogCaptureFixture) -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        if service_id == "svc-slow":
            await asyncio.sleep(5)

    with caplog.at_level(logging.ERROR, logger="profile_refresher"):
        outcome = await FetchExecutor(fetch, timeout_seconds=0.05).run([_contact("slow"), _contact("fast")])

    assert outcome.attempted == 2
    assert outcome.succeeded == 1
    assert outcome.timed_out == 1
    assert "timed out" in caplog.text


@pytest.mark.asyncio
async def test_empty_selection_returns_zero_counts() -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        raise AssertionError("no contact should be fetched")

    outcome = await FetchExecutor(fetch).run([])

    assert (outcome.attempted, outcome.succeeded, outcome.failed) == (0, 0, 0)


@pytest.mark.asyncio
async def test_selection_is_consumed_before_first_fetch() -> None:
    progress = {"exhausted": False}
    observed: list[bool] = []

    def candidates():
        yield _contact("a")
        yield _contact("b")
        progress["exhausted"] = True

    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        observed.append(progress["exhausted"])

    await FetchExecutor(fetch).run(candidates())

    assert observed == [True, True]


def test_executor_rejects_invalid_limits() -> None:
    async def fetch(service_id: str | None, phone_number: str | None) -> None:
        return None

    with pytest.raises(SchedulerError, match="concurrency"):
        FetchExecutor(fetch, concurrency=0)
    with pytest.raises(SchedulerError, match="timeout_seconds"):
        FetchExecutor(fetch, timeout_seconds=0)


@pytest.mark.asyncio
async def test_pool_counts_crashed_tasks_without_raising() -> None:
    pool = BoundedTaskPool(2)
    finished: list[str] = []

    async def crash() -> None:
        raise RuntimeError("unexpected")

    async def work() -> None:
        finished.append("work")

    pool.spawn(crash, label="crash")
    pool.spawn(work, label="work")
    await pool.join()

    assert pool.crashed == 1
    assert pool.timed_out == 0
    assert finished == ["work"]


def test_pool_rejects_invalid_arguments() -> None:
    with pytest.raises(SchedulerError):
        BoundedTaskPool(0)
    with pytest.raises(SchedulerError):
        BoundedTaskPool(1, timeout_seconds=-1)


def _contact(contact_id: str, *, phone: str | None = None) -> Contact:
    return Contact(
        id=contact_id,
        kind=ContactKind.INDIVIDUAL,
        service_id=f"svc-{contact_id}",
        phone_number=phone,
    )
