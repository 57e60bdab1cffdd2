from __future__ import annotations

import asyncio

import pytest

from status_card.scheduler import JobScheduler


@pytest.mark.asyncio
async def test_interval_job_runs_immediately_and_reports_status() -> None:
    ran = asyncio.Event()

    async def job() -> None:
        ran.set()

    scheduler = JobScheduler()
    scheduler.add_interval_job("publish", job, 3600, description="Publish status card")
    scheduler.start()
    try:
        await asyncio.wait_for(ran.wait(), timeout=5)
        status = scheduler.get_job_status("publish")
        assert status["interval_seconds"] == 3600
        assert status["description"] == "Publish status card"
        assert status["next_run_time"] is not None
    finally:
        scheduler.stop()
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_job_without_immediate_run_waits_for_interval() -> None:
    calls = 0

    async def job() -> None:
        nonlocal calls
        calls += 1

    scheduler = JobScheduler()
    scheduler.add_interval_job("later", job, 3600, run_immediately=False)
    scheduler.start()
    try:
        await asyncio.sleep(0.1)
        assert calls == 0
        assert scheduler.remove_job("later") is True
        assert scheduler.get_job_status("later") is None
        assert scheduler.remove_job("later") is False
    finally:
        scheduler.stop()
