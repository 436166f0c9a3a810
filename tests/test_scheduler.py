"""
Benchmark warm-up job registration and execution.
"""
import asyncio

import pytest

from app.scheduler import get_scheduled_jobs, scheduler, setup_scheduler, warm_benchmark_cache


class FakeEngine:
    def __init__(self, fail=False):
        self.fail = fail
        self.periods = []

    def warm_benchmarks(self, period):
        self.periods.append(period)
        if self.fail:
            raise RuntimeError("statement timeout")
        return 12


@pytest.fixture
def clean_scheduler():
    yield scheduler
    scheduler.remove_all_jobs()


class TestWarmup:

    def test_job_registered(self, clean_scheduler):
        engine = FakeEngine()
        setup_scheduler(engine)
        setup_scheduler(engine)  # replace_existing keeps a single job
        jobs = get_scheduled_jobs()
        assert [j["id"] for j in jobs] == ["channel_fit_benchmark_warmup"]

    def test_warmup_uses_default_period(self):
        engine = FakeEngine()
        asyncio.run(warm_benchmark_cache(engine))
        assert engine.periods == ["last_90_days"]

    def test_warmup_failure_is_logged_not_raised(self):
        engine = FakeEngine(fail=True)
        asyncio.run(warm_benchmark_cache(engine))
        assert engine.periods == ["last_90_days"]
