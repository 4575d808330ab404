import asyncio

import pytest

from app.background import PeriodicSweeper


@pytest.mark.anyio
async def test_run_once_runs_every_job() -> None:
    sweeper = PeriodicSweeper(interval_seconds=60)
    calls: list[str] = []

    async def sessions() -> int:
        calls.append("sessions")
        return 2

    async def buckets() -> int:
        calls.append("buckets")
        return 0

    sweeper.register("admin-sessions", sessions)
    sweeper.register("admin-rate-limits", buckets)

    removed = await sweeper.run_once()

    assert removed == {"admin-sessions": 2, "admin-rate-limits": 0}
    assert calls == ["sessions", "buckets"]
    assert sweeper.job("admin-sessions").last_removed == 2


@pytest.mark.anyio
async def test_failing_job_does_not_stop_others() -> None:
    sweeper = PeriodicSweeper(interval_seconds=60)

    async def broken() -> int:
        raise RuntimeError("redis down")

    async def healthy() -> int:
        return 1

    sweeper.register("broken", broken)
    sweeper.register("healthy", healthy)

    first = await sweeper.run_once()
    second = await sweeper.run_once()

    assert first == {"broken": 0, "healthy": 1}
    assert second == first
    assert sweeper.job("broken").failures == 2
    assert sweeper.job("broken").runs == 2
    assert sweeper.job("healthy").failures == 0


@pytest.mark.anyio
async def test_worker_runs_on_interval_until_stopped() -> None:
    sweeper = PeriodicSweeper(interval_seconds=0.01)
    ran = asyncio.Event()

    async def handler() -> int:
        ran.set()
        return 0

    sweeper.register("tick", handler)
    await sweeper.start()
    await sweeper.start()
    assert sweeper.running

    await asyncio.wait_for(ran.wait(), timeout=1)
    await sweeper.stop()

    assert not sweeper.running
    assert sweeper.job("tick").runs >= 1


@pytest.mark.anyio
async def test_stop_without_start_is_safe() -> None:
    sweeper = PeriodicSweeper(interval_seconds=1)

    await sweeper.stop()

    assert not sweeper.running


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PeriodicSweeper(interval_seconds=0)
