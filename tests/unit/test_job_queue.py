"""Tests for the JobRunner: FIFO draining, retry backoff and cancellation."""
import asyncio
import os
from unittest.mock import AsyncMock

import pytest

from server.downloaders.exceptions import NotFoundError, PrivateVideoError
from server.downloaders.job_queue import JobRunner
from server.downloaders.job_store import Job, JobStatus, JobStore
from server.downloaders.retry_handler import RetryPolicy
from server.downloaders.types import ProcessingOptions

URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def store():
    return JobStore()


def _add_job(store, runner, job_id, options=None):
    options = options or ProcessingOptions()
    store.put(Job(id=job_id, url=URL, platform="YouTube", options=options))
    runner.add(job_id, URL, options)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_delays_double(self):
        policy = RetryPolicy(max_attempts=3, base_delay=5.0)
        assert policy.delay_for(1) == 5.0
        assert policy.delay_for(2) == 10.0

    def test_should_retry_until_max_attempts(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)


class TestRetries:
    """Tests for the retry law."""

    @pytest.mark.asyncio
    async def test_always_failing_job_runs_three_times(self, store, fake_processor_factory):
        """Three attempts, delays base and 2*base, then failed with the last error."""
        processor = fake_processor_factory(failures=99, error=RuntimeError("yt-dlp exited with code 1"))
        sleep = AsyncMock()
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=3, base_delay=5.0), sleep=sleep)

        _add_job(store, runner, "job-1")
        await runner.join()

        assert len(processor.calls) == 3
        assert [call.args[0] for call in sleep.await_args_list] == [5.0, 10.0]

        job = store.get("job-1")
        assert job.status == JobStatus.FAILED
        assert job.error == "yt-dlp exited with code 1"
        assert job.attempts == 3
        assert job.failed_at is not None

    @pytest.mark.asyncio
    async def test_success_after_retry(self, store, fake_processor_factory):
        processor = fake_processor_factory(failures=1)
        sleep = AsyncMock()
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=3, base_delay=2.0), sleep=sleep)

        _add_job(store, runner, "job-1")
        await runner.join()

        job = store.get("job-1")
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 2
        assert job.progress == 100.0
        assert job.result.download_url == "/downloads/job-1.mp4"
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_classified_error_uses_its_message(self, store, fake_processor_factory):
        processor = fake_processor_factory(failures=99, error=PrivateVideoError("ERROR: Private video"))
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=1), sleep=AsyncMock())

        _add_job(store, runner, "job-1")
        await runner.join()

        job = store.get("job-1")
        assert job.status == JobStatus.FAILED
        assert job.error == "ERROR: Private video"
        assert len(processor.calls) == 1

    @pytest.mark.asyncio
    async def test_job_stays_processing_during_backoff(self, store, fake_processor_factory):
        release = asyncio.Event()

        async def sleep(delay):
            await release.wait()

        processor = fake_processor_factory(failures=1)
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=3, base_delay=5.0), sleep=sleep)

        _add_job(store, runner, "job-1")
        while runner.get_stats()["scheduledRetries"] == 0:
            await asyncio.sleep(0)

        job = store.get("job-1")
        assert job.status == JobStatus.PROCESSING
        assert "retrying in 5s" in job.message

        release.set()
        await runner.join()
        assert store.get("job-1").status == JobStatus.COMPLETED


class TestOrdering:
    """Tests for FIFO draining."""

    @pytest.mark.asyncio
    async def test_jobs_processed_in_submission_order(self, store, fake_processor_factory):
        gate = asyncio.Event()
        processor = fake_processor_factory(gate=gate)
        runner = JobRunner(store, processor, policy=RetryPolicy(), sleep=AsyncMock())

        for job_id in ("job-a", "job-b", "job-c"):
            _add_job(store, runner, job_id)

        await processor.started.wait()
        stats = runner.get_stats()
        assert stats["processing"] == 1
        assert stats["waiting"] == 2
        assert stats["isProcessing"] is True
        assert store.get("job-b").status == JobStatus.QUEUED

        gate.set()
        await runner.join()

        assert processor.calls == ["job-a", "job-b", "job-c"]
        assert all(job.status == JobStatus.COMPLETED for job in store)
        assert runner.get_stats()["isProcessing"] is False

    @pytest.mark.asyncio
    async def test_one_item_at_a_time(self, store, fake_processor_factory):
        running = []
        peak = []

        class CountingProcessor:
            async def process(self, job_id, url, options, on_progress=None):
                running.append(job_id)
                peak.append(len(running))
                await asyncio.sleep(0)
                running.remove(job_id)
                raise RuntimeError("nope")

        runner = JobRunner(store, CountingProcessor(), policy=RetryPolicy(max_attempts=2), sleep=AsyncMock())
        for job_id in ("job-a", "job-b"):
            _add_job(store, runner, job_id)
        await runner.join()

        assert max(peak) == 1


class TestCancellation:
    """Tests for JobRunner.cancel()."""

    @pytest.mark.asyncio
    async def test_cancel_queued_job_skips_it(self, store, fake_processor_factory):
        gate = asyncio.Event()
        processor = fake_processor_factory(gate=gate)
        runner = JobRunner(store, processor, policy=RetryPolicy(), sleep=AsyncMock())

        _add_job(store, runner, "job-a")
        _add_job(store, runner, "job-b")
        await processor.started.wait()

        assert runner.cancel("job-b") == "cancelled"
        gate.set()
        await runner.join()

        assert processor.calls == ["job-a"]
        assert store.get("job-b").status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_processing_job_discards_result(self, store, fake_processor_factory, settings):
        gate = asyncio.Event()
        processor = fake_processor_factory(gate=gate)
        runner = JobRunner(store, processor, policy=RetryPolicy(), sleep=AsyncMock())

        _add_job(store, runner, "job-a")
        await processor.started.wait()

        assert runner.cancel("job-a") == "cancelled"
        gate.set()
        await runner.join()

        job = store.get("job-a")
        assert job.status == JobStatus.CANCELLED
        assert job.result is None
        assert not os.path.exists(os.path.join(settings.downloads_dir, "job-a.mp4"))

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_drops_retry(self, store, fake_processor_factory):
        release = asyncio.Event()

        async def sleep(delay):
            await release.wait()

        processor = fake_processor_factory(failures=1)
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=3), sleep=sleep)

        _add_job(store, runner, "job-a")
        while runner.get_stats()["scheduledRetries"] == 0:
            await asyncio.sleep(0)

        runner.cancel("job-a")
        release.set()
        await runner.join()

        assert len(processor.calls) == 1
        assert store.get("job-a").status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_terminal_job_deletes_it(self, store, fake_processor_factory):
        runner = JobRunner(store, fake_processor_factory(), policy=RetryPolicy(), sleep=AsyncMock())

        _add_job(store, runner, "job-a")
        await runner.join()
        assert store.get("job-a").status == JobStatus.COMPLETED

        assert runner.cancel("job-a") == "deleted"
        assert store.get("job-a") is None

        with pytest.raises(NotFoundError):
            runner.cancel("job-a")

    def test_cancel_unknown_job(self, store):
        runner = JobRunner(store, processor=None, policy=RetryPolicy(), sleep=AsyncMock())
        with pytest.raises(NotFoundError):
            runner.cancel("missing")


class TestShutdown:
    """Tests for JobRunner.shutdown()."""

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending_retries(self, store, fake_processor_factory):
        async def never(delay):
            await asyncio.Event().wait()

        processor = fake_processor_factory(failures=99)
        runner = JobRunner(store, processor, policy=RetryPolicy(max_attempts=3), sleep=never)

        _add_job(store, runner, "job-a")
        while runner.get_stats()["scheduledRetries"] == 0:
            await asyncio.sleep(0)

        await runner.shutdown()
        await asyncio.sleep(0)

        assert runner.get_stats()["scheduledRetries"] == 0
        assert len(processor.calls) == 1
