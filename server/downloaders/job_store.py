"""In-memory job records and their lifecycle.

This module defines the Job (the mutable record of one download) and the
JobStore, the only owner of those records. The store is created once per
process and shared by reference with the JobRunner and the HTTP layer.

Valid transitions:
    queued -> processing -> completed | failed
    queued | processing -> cancelled

No terminal state (completed, failed, cancelled) is ever reopened; the only
way out of a terminal state is deleting the record.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .types import ProcessingOptions, ProcessingResult

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class JobStatus(Enum):
    """Possible job states.

    Attributes:
        QUEUED: Waiting for the runner
        PROCESSING: Fetch or transcode running (includes retry backoff)
        COMPLETED: Finished with a file available
        FAILED: Attempts exhausted; see error
        CANCELLED: Cancelled by the client
    """
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


@dataclass
class Job:
    """A single download job.

    Attributes:
        id: Unique identifier (uuid4)
        url: Source URL
        platform: Detected platform
        options: Quality, format and watermark removal
        status: Current state (JobStatus)
        progress: Percentage [0, 100]
        message: Human-readable progress message
        attempts: Attempts made so far
        result: Output (when completed)
        error: Error message (when failed)
        client_ip: IP of the client that created it
        metadata: Optional metadata attached by the client
    """
    id: str
    url: str
    platform: str
    options: ProcessingOptions = field(default_factory=ProcessingOptions)
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    message: str = "Job queued"
    attempts: int = 0
    result: Optional[ProcessingResult] = None
    error: Optional[str] = None
    client_ip: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def settled_at(self) -> datetime:
        """When the job reached its terminal state (or its last update)."""
        return self.completed_at or self.failed_at or self.updated_at

    def can_transition(self, new_status: JobStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the job with the camelCase keys used by the API."""
        data: Dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "platform": self.platform,
            "quality": self.options.quality,
            "format": self.options.format,
            "removeWatermark": self.options.remove_watermark,
            "attempts": self.attempts,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if self.error:
            data["error"] = self.error
        if self.result:
            data["downloadUrl"] = self.result.download_url
            data["fileSize"] = self.result.file_size
        if self.completed_at:
            data["completedAt"] = isoformat(self.completed_at)
        if self.failed_at:
            data["failedAt"] = isoformat(self.failed_at)
        if self.metadata:
            data["metadata"] = self.metadata
        return data


class JobStore:
    """Mapping job id -> Job, the single owner of job records.

    All mutation goes through this class so the transition rules are
    enforced in one place. Updates aimed at a job that already reached a
    terminal state are refused and logged, never applied.

    Example:
        store = JobStore()
        store.put(Job(id=job_id, url=url, platform="TikTok"))
        store.mark_processing(job_id, attempt=1)
        store.update_progress(job_id, 42, "Downloading video...")
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def put(self, job: Job) -> Job:
        self._jobs[job.id] = job
        logger.debug(f"[{job.id}] Job stored ({job.status.value})")
        return job

    def delete(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        if job is not None:
            logger.debug(f"[{job_id}] Job deleted")
        return job is not None

    def list(self, status: Optional[JobStatus] = None) -> List[Job]:
        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
        return jobs

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status.value] += 1
        return counts

    def _transition(self, job_id: str, new_status: JobStatus) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None:
            logger.debug(f"[{job_id}] Ignoring {new_status.value} update for unknown job")
            return None
        if not job.can_transition(new_status):
            logger.info(
                f"[{job_id}] Refusing transition {job.status.value} -> {new_status.value}"
            )
            return None
        job.status = new_status
        job.updated_at = utcnow()
        return job

    def mark_processing(self, job_id: str, attempt: int) -> Optional[Job]:
        """Mark the job as processing for the given attempt."""
        job = self._transition(job_id, JobStatus.PROCESSING)
        if job is not None:
            job.attempts = attempt
            job.progress = 5.0
            job.message = "Processing started" if attempt == 1 else f"Retrying (attempt {attempt})"
            logger.info(f"[{job_id}] Processing (attempt {attempt})")
        return job

    def update_progress(self, job_id: str, percent: float, message: str = "") -> Optional[Job]:
        """Update progress only while the job is processing."""
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return None
        job.progress = max(0.0, min(100.0, float(percent)))
        if message:
            job.message = message
        job.updated_at = utcnow()
        return job

    def mark_retrying(self, job_id: str, attempt: int, delay: float, error: str) -> Optional[Job]:
        """Record a scheduled retry without leaving PROCESSING."""
        job = self._transition(job_id, JobStatus.PROCESSING)
        if job is not None:
            job.message = f"Attempt {attempt} failed, retrying in {delay:g}s: {error}"
        return job

    def mark_completed(self, job_id: str, result: ProcessingResult) -> Optional[Job]:
        job = self._transition(job_id, JobStatus.COMPLETED)
        if job is not None:
            job.progress = 100.0
            job.message = "Download complete!"
            job.result = result
            job.completed_at = job.updated_at
            logger.info(f"[{job_id}] Job completed: {result.download_url}")
        return job

    def mark_failed(self, job_id: str, error: str) -> Optional[Job]:
        job = self._transition(job_id, JobStatus.FAILED)
        if job is not None:
            job.error = error
            job.message = "Processing failed"
            job.failed_at = job.updated_at
            logger.error(f"[{job_id}] Job failed: {error}")
        return job

    def mark_cancelled(self, job_id: str) -> Optional[Job]:
        job = self._transition(job_id, JobStatus.CANCELLED)
        if job is not None:
            job.message = "Job cancelled"
            logger.info(f"[{job_id}] Job cancelled")
        return job

    def evict_terminal(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Delete terminal jobs that settled more than ``max_age`` ago.

        Returns:
            Number of evicted jobs
        """
        cutoff = (now or utcnow()) - max_age
        expired = [
            job.id for job in self._jobs.values()
            if job.is_terminal and job.settled_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired jobs")
        return len(expired)


__all__ = [
    "Job",
    "JobStatus",
    "JobStore",
    "TERMINAL_STATUSES",
]
