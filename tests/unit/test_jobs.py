"""
Unit tests for background job dispatch
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from apscheduler.triggers.date import DateTrigger
from genealogy.jobs import InMemoryJobDispatcher, RetryPolicy, SchedulerJobDispatcher
from core.exceptions import InvalidInputError, NoResponseError


class FlakyJob:
    """Fails a fixed number of times, then succeeds"""

    name = "flaky"

    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or NoResponseError("No response received from lookup service")
        self.calls = 0
        self.rescued = []

    async def handle(self, payload):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return payload

    async def rescue(self, payload, error):
        self.rescued.append((payload, error))


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class TestRetryPolicy:

    def test_exponential_backoff(self):
        policy = RetryPolicy(attempts=3, delay=5)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [5, 10, 20]

    def test_fixed_backoff(self):
        policy = RetryPolicy(backoff="fixed", delay=2)

        assert policy.delay_for(1) == policy.delay_for(3) == 2


class TestInMemoryJobDispatcher:
    """Test inline execution with retries"""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        sleep = RecordingSleep()
        dispatcher = InMemoryJobDispatcher(sleep=sleep)
        job = FlakyJob(failures=2)

        job_id = await dispatcher.dispatch(job, {"n": 1}, RetryPolicy(attempts=3, delay=5))

        # Assertions
        assert job.calls == 3
        assert sleep.delays == [5, 10]
        assert dispatcher.completed == [job_id]
        assert job.rescued == []

    @pytest.mark.asyncio
    async def test_rescue_after_exhausted_attempts(self):
        sleep = RecordingSleep()
        dispatcher = InMemoryJobDispatcher(sleep=sleep)
        job = FlakyJob(failures=5)

        job_id = await dispatcher.dispatch(job, {"n": 1}, RetryPolicy(attempts=3, delay=1))

        assert job.calls == 3
        assert sleep.delays == [1, 2]
        assert dispatcher.failed == [job_id]
        assert len(job.rescued) == 1
        assert job.rescued[0][0] == {"n": 1}

    @pytest.mark.asyncio
    async def test_non_retryable_errors_are_not_retried(self):
        sleep = RecordingSleep()
        dispatcher = InMemoryJobDispatcher(sleep=sleep)
        job = FlakyJob(failures=1, error=InvalidInputError("Invalid national identifier"))

        await dispatcher.dispatch(job, {}, RetryPolicy(attempts=3))

        assert job.calls == 1
        assert sleep.delays == []
        assert isinstance(job.rescued[0][1], InvalidInputError)

    @pytest.mark.asyncio
    async def test_failing_rescue_does_not_propagate(self):
        job = FlakyJob(failures=1, error=InvalidInputError("Invalid national identifier"))

        async def broken_rescue(payload, error):
            raise RuntimeError("database down")

        job.rescue = broken_rescue
        dispatcher = InMemoryJobDispatcher(sleep=RecordingSleep())

        job_id = await dispatcher.dispatch(job, {})

        assert dispatcher.failed == [job_id]


class TestSchedulerJobDispatcher:
    """Test one-shot APScheduler jobs with a mocked scheduler"""

    def setup_method(self):
        self.now = datetime(2026, 1, 1, 12, 0, 0)
        self.scheduler = MagicMock()
        self.dispatcher = SchedulerJobDispatcher(scheduler=self.scheduler, now=lambda: self.now)

    @pytest.mark.asyncio
    async def test_dispatch_schedules_first_attempt(self):
        job = FlakyJob(failures=0)
        policy = RetryPolicy()

        job_id = await self.dispatcher.dispatch(job, {"n": 1}, policy)

        self.scheduler.add_job.assert_called_once()
        kwargs = self.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == f"{job_id}:1"
        assert kwargs["args"] == [job, {"n": 1}, policy, job_id, 1]
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert kwargs["replace_existing"]

    @pytest.mark.asyncio
    async def test_failed_attempt_is_rescheduled_with_backoff(self):
        job = FlakyJob(failures=1)
        policy = RetryPolicy(attempts=3, delay=5)

        await self.dispatcher._execute(job, {}, policy, "job-1", 1)

        kwargs = self.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == "job-1:2"
        assert kwargs["args"][-1] == 2
        run_date = kwargs["trigger"].run_date.replace(tzinfo=None)
        assert run_date == self.now + timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_successful_attempt_is_not_rescheduled(self):
        job = FlakyJob(failures=0)

        await self.dispatcher._execute(job, {}, RetryPolicy(), "job-1", 1)

        self.scheduler.add_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_last_attempt_failure_runs_rescue(self):
        job = FlakyJob(failures=5)

        await self.dispatcher._execute(job, {"n": 1}, RetryPolicy(attempts=3), "job-1", 3)

        self.scheduler.add_job.assert_not_called()
        assert len(job.rescued) == 1

    def test_start_and_stop(self):
        self.dispatcher.start()
        self.dispatcher.stop()

        self.scheduler.start.assert_called_once()
        self.scheduler.shutdown.assert_called_once()
