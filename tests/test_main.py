"""
Tests for the scheduled refresh wrapper.
"""

import asyncio

from newsfeed.main import run_refresh
from newsfeed.services.ingestion import AggregationError, AllSourcesFailed


class FakeJob:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def run(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"articles_published": 3}


class TestRunRefresh:
    """A failed scheduled run must not take the scheduler down."""

    def test_success(self):
        job = FakeJob()
        asyncio.run(run_refresh(job))
        assert job.calls == 1

    def test_total_failure_swallowed(self):
        job = FakeJob(AllSourcesFailed([AggregationError("DownSite", ["timeout"])]))
        asyncio.run(run_refresh(job))
        assert job.calls == 1

    def test_crash_swallowed(self):
        job = FakeJob(RuntimeError("boom"))
        asyncio.run(run_refresh(job))
        assert job.calls == 1
