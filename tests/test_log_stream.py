import asyncio

import pytest

from xcbridge.job_store import JobStore
from xcbridge.log_stream import LogEvent, follow_logs
from xcbridge.models import JobKind


async def _collect(store, job_id):
    return [event async for event in follow_logs(store, job_id, poll_interval=0.01)]


@pytest.mark.asyncio
async def test_unknown_job_yields_nothing():
    assert await _collect(JobStore(), "missing") == []


@pytest.mark.asyncio
async def test_lines_delivered_once_in_order_across_bursts():
    store = JobStore()
    await store.create("a", JobKind.build)

    async def produce():
        n = 0
        for burst in (3, 1, 5):
            for _ in range(burst):
                await store.append_log("a", f"line {n}")
                n += 1
            await asyncio.sleep(0.03)
        await store.complete("a", [])

    observer = asyncio.create_task(_collect(store, "a"))
    await produce()
    events = await asyncio.wait_for(observer, timeout=5)

    assert events[:-1] == [LogEvent("line", f"line {n}") for n in range(9)]
    assert events[-1] == LogEvent("complete", "success")


@pytest.mark.asyncio
async def test_observers_replay_independently():
    store = JobStore()
    await store.create("a", JobKind.test)
    await store.append_log("a", "first")

    early = asyncio.create_task(_collect(store, "a"))
    await asyncio.sleep(0.02)
    await store.append_log("a", "second")
    await store.fail("a", "Tests failed", 65)
    late = await _collect(store, "a")

    expected = [
        LogEvent("line", "first"),
        LogEvent("line", "second"),
        LogEvent("complete", "failed"),
    ]
    assert await asyncio.wait_for(early, timeout=5) == expected
    assert late == expected


@pytest.mark.asyncio
async def test_cancelled_job_ends_with_cancelled_marker():
    store = JobStore()
    await store.create("a", JobKind.build)
    await store.append_log("a", "starting")

    observer = asyncio.create_task(_collect(store, "a"))
    await asyncio.sleep(0.03)
    await store.cancel("a")
    events = await asyncio.wait_for(observer, timeout=5)

    assert events == [LogEvent("line", "starting"), LogEvent("complete", "cancelled")]

