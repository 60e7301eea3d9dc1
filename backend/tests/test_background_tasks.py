"""
Tests for the post-commit side-effect runner.
"""

import asyncio

import pytest
import structlog

from academy_booking.services.background_tasks import SideEffectRunner


@pytest.mark.asyncio
async def test_job_retried_until_success():
    runner = SideEffectRunner(workers=1, max_attempts=3, backoff_seconds=0.001)
    calls = []

    async def flaky(value):
        calls.append(value)
        if len(calls) < 3:
            raise RuntimeError("transient")

    assert runner.submit("flaky", flaky, "x")
    await runner.drain()
    await runner.stop()

    assert calls == ["x", "x", "x"]


@pytest.mark.asyncio
async def test_job_dropped_after_max_attempts():
    runner = SideEffectRunner(workers=1, max_attempts=2, backoff_seconds=0.001)
    calls = []

    async def broken():
        calls.append(1)
        raise RuntimeError("permanent")

    async def healthy():
        calls.append(2)

    runner.submit("broken", broken)
    runner.submit("healthy", healthy)
    await runner.drain()
    await runner.stop()

    assert calls == [1, 1, 2]


@pytest.mark.asyncio
async def test_full_queue_drops_job():
    runner = SideEffectRunner(workers=1, queue_size=1, max_attempts=1)
    release = asyncio.Event()

    async def blocked():
        await release.wait()

    assert runner.submit("first", blocked)
    await asyncio.sleep(0)  # let the worker take the first job
    assert runner.submit("second", blocked)
    assert not runner.submit("third", blocked)

    release.set()
    await runner.stop()


@pytest.mark.asyncio
async def test_log_context_travels_with_job():
    runner = SideEffectRunner(workers=1)
    seen = {}

    async def capture():
        seen.update(structlog.contextvars.get_contextvars())

    with structlog.contextvars.bound_contextvars(request_id="req-42"):
        runner.submit("capture", capture)
    await runner.drain()
    await runner.stop()

    assert seen["request_id"] == "req-42"


@pytest.mark.asyncio
async def test_stop_is_safe_when_never_started():
    runner = SideEffectRunner()
    assert not runner.running
    await runner.stop()
    await runner.drain()
