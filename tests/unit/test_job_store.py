"""Tests for Job records and the JobStore lifecycle rules."""
from datetime import timedelta

import pytest

from server.downloaders.job_store import Job, JobStatus, JobStore, utcnow
from server.downloaders.types import ProcessingOptions, ProcessingResult


@pytest.fixture
def store():
    store = JobStore()
    store.put(Job(id="job-1", url="https://youtu.be/abc", platform="YouTube"))
    return store


def _result():
    return ProcessingResult(file_path="/tmp/job-1.mp4", file_size=10, download_url="/downloads/job-1.mp4")


class TestTransitions:
    """Tests for status transitions."""

    def test_new_job_is_queued(self, store):
        job = store.get("job-1")
        assert job.status == JobStatus.QUEUED
        assert job.progress == 0.0

    def test_processing_sets_attempt_and_progress(self, store):
        job = store.mark_processing("job-1", attempt=1)
        assert job.status == JobStatus.PROCESSING
        assert job.progress == 5.0
        assert job.attempts == 1

    def test_complete(self, store):
        store.mark_processing("job-1", attempt=1)
        job = store.mark_completed("job-1", _result())
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100.0
        assert job.completed_at is not None

    def test_queued_cannot_complete_directly(self, store):
        assert store.mark_completed("job-1", _result()) is None
        assert store.get("job-1").status == JobStatus.QUEUED

    def test_terminal_state_is_never_left(self, store):
        store.mark_processing("job-1", attempt=1)
        store.mark_failed("job-1", "boom")

        assert store.mark_processing("job-1", attempt=2) is None
        assert store.mark_completed("job-1", _result()) is None
        assert store.mark_cancelled("job-1") is None
        job = store.get("job-1")
        assert job.status == JobStatus.FAILED
        assert job.error == "boom"

    def test_cancelled_job_refuses_completion(self, store):
        store.mark_processing("job-1", attempt=1)
        store.mark_cancelled("job-1")
        assert store.mark_completed("job-1", _result()) is None
        assert store.get("job-1").result is None

    def test_unknown_job_updates_are_ignored(self, store):
        assert store.mark_processing("missing", attempt=1) is None
        assert store.update_progress("missing", 50) is None


class TestProgress:
    """Tests for progress updates."""

    def test_progress_is_clamped(self, store):
        store.mark_processing("job-1", attempt=1)
        assert store.update_progress("job-1", 150).progress == 100.0
        assert store.update_progress("job-1", -3).progress == 0.0

    def test_progress_message_kept_when_empty(self, store):
        store.mark_processing("job-1", attempt=1)
        store.update_progress("job-1", 20, "Downloading video...")
        job = store.update_progress("job-1", 30)
        assert job.message == "Downloading video..."

    def test_progress_ignored_outside_processing(self, store):
        assert store.update_progress("job-1", 40) is None
        assert store.get("job-1").progress == 0.0


class TestQueries:
    """Tests for listing, counting and eviction."""

    def test_list_and_count(self, store):
        store.put(Job(id="job-2", url="https://youtu.be/def", platform="YouTube"))
        store.mark_processing("job-2", attempt=1)

        assert len(store) == 2
        assert [job.id for job in store.list(JobStatus.PROCESSING)] == ["job-2"]
        counts = store.count_by_status()
        assert counts["queued"] == 1
        assert counts["processing"] == 1
        assert counts["completed"] == 0

    def test_delete(self, store):
        assert store.delete("job-1") is True
        assert store.delete("job-1") is False
        assert "job-1" not in store

    def test_evict_terminal_only_after_max_age(self, store):
        store.put(Job(id="job-2", url="https://youtu.be/def", platform="YouTube"))
        store.mark_processing("job-1", attempt=1)
        store.mark_failed("job-1", "boom")

        assert store.evict_terminal(timedelta(hours=24)) == 0
        later = utcnow() + timedelta(hours=25)
        assert store.evict_terminal(timedelta(hours=24), now=later) == 1
        assert store.get("job-1") is None
        # Non-terminal jobs are never evicted
        assert store.get("job-2") is not None


class TestSerialization:
    """Tests for Job.to_dict()."""

    def test_to_dict_queued(self):
        job = Job(
            id="job-1",
            url="https://youtu.be/abc",
            platform="YouTube",
            options=ProcessingOptions(quality="720p", remove_watermark=False, format="webm"),
        )
        data = job.to_dict()
        assert data["jobId"] == "job-1"
        assert data["status"] == "queued"
        assert data["quality"] == "720p"
        assert data["format"] == "webm"
        assert data["removeWatermark"] is False
        assert data["createdAt"].endswith("Z")
        assert "downloadUrl" not in data
        assert "error" not in data

    def test_to_dict_completed(self, store):
        store.mark_processing("job-1", attempt=1)
        data = store.mark_completed("job-1", _result()).to_dict()
        assert data["downloadUrl"] == "/downloads/job-1.mp4"
        assert data["fileSize"] == 10
        assert "completedAt" in data
