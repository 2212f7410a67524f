"""JobRunner: FIFO queues drained onto the MediaProcessor with retries.

Each named queue has at most one drain task. ``add`` appends a work item
and starts the drain task when the queue is idle; the drain task processes
items strictly in order, one at a time, until the queue is empty.

A failed item is retried after ``RetryPolicy.delay_for(attempt)`` seconds
by an independent task that re-appends a new work item (carrying the
attempt count) to the back of the queue. When attempts run out the job is
marked failed with the last error message. Errors never propagate past
the runner; they end up as the job's error text.

Cancellation is cooperative: a cancelled job's pending items are dropped,
but a media process already running for it is left to finish. Its result
is discarded because the store refuses to leave the cancelled state.
"""
import asyncio
import logging
import os
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from .exceptions import DownloadError, NotFoundError
from .job_store import JobStatus, JobStore
from .retry_handler import RetryPolicy
from .types import ProcessingOptions, ProcessingResult

logger = logging.getLogger(__name__)

DEFAULT_QUEUE = "video-processing"


@dataclass(frozen=True)
class WorkItem:
    """One queued attempt to run the media pipeline for a job.

    Attributes:
        job_id: Job this item belongs to
        url: Source URL
        options: Processing options
        policy: Retry policy
        attempts: Attempts already made before this item
    """
    job_id: str
    url: str
    options: ProcessingOptions
    policy: RetryPolicy
    attempts: int = 0


def _error_text(error: Exception) -> str:
    if isinstance(error, DownloadError):
        return error.message
    return str(error) or error.__class__.__name__


class JobRunner:
    """Drains per-queue FIFOs sequentially, retrying failures with backoff.

    Args:
        store: Shared JobStore
        processor: Object with an async ``process(job_id, url, options,
            on_progress)`` method returning a ProcessingResult
        policy: Default retry policy for new items
        sleep: Coroutine used to wait before a retry (injectable for tests)
    """

    def __init__(
        self,
        store: JobStore,
        processor: Any,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.processor = processor
        self.policy = policy or RetryPolicy.from_config()
        self._sleep = sleep

        self._queues: Dict[str, Deque[WorkItem]] = defaultdict(deque)
        self._draining: Dict[str, bool] = {}
        self._drain_tasks: Dict[str, asyncio.Task] = {}
        self._retry_tasks: Set[asyncio.Task] = set()
        self._active: Dict[str, str] = {}

    def add(
        self,
        job_id: str,
        url: str,
        options: ProcessingOptions,
        queue_name: str = DEFAULT_QUEUE,
        policy: Optional[RetryPolicy] = None,
    ) -> WorkItem:
        """Enqueue a job's first work item and start draining if idle."""
        item = WorkItem(job_id=job_id, url=url, options=options, policy=policy or self.policy)
        self._enqueue(queue_name, item)
        logger.info(f"[{job_id}] Job added to queue {queue_name}")
        return item

    def _enqueue(self, queue_name: str, item: WorkItem) -> None:
        self._queues[queue_name].append(item)
        if not self._draining.get(queue_name):
            self._draining[queue_name] = True
            task = asyncio.get_running_loop().create_task(self._drain(queue_name))
            self._drain_tasks[queue_name] = task

    async def _drain(self, queue_name: str) -> None:
        queue = self._queues[queue_name]
        try:
            while queue:
                item = queue.popleft()
                await self._process_item(queue_name, item)
        finally:
            self._draining[queue_name] = False
            self._drain_tasks.pop(queue_name, None)
            logger.debug(f"Queue {queue_name} drained")

    async def _process_item(self, queue_name: str, item: WorkItem) -> None:
        job = self.store.get(item.job_id)
        if job is None or job.is_terminal:
            logger.info(f"[{item.job_id}] Skipping work item for inactive job")
            return

        attempt = item.attempts + 1
        self.store.mark_processing(item.job_id, attempt)
        self._active[queue_name] = item.job_id

        def on_progress(percent: float, message: str) -> None:
            self.store.update_progress(item.job_id, percent, message)

        try:
            result = await self.processor.process(item.job_id, item.url, item.options, on_progress)
        except Exception as e:
            self._handle_failure(queue_name, item, attempt, e)
        else:
            if self.store.mark_completed(item.job_id, result) is None:
                self._discard_output(item.job_id, result)
        finally:
            self._active.pop(queue_name, None)

    def _handle_failure(self, queue_name: str, item: WorkItem, attempt: int, error: Exception) -> None:
        message = _error_text(error)
        logger.error(
            f"[{item.job_id}] Attempt {attempt}/{item.policy.max_attempts} failed: {error}"
        )

        job = self.store.get(item.job_id)
        if job is None or job.is_terminal:
            return

        if item.policy.should_retry(attempt):
            delay = item.policy.delay_for(attempt)
            self.store.mark_retrying(item.job_id, attempt, delay, message)
            self._schedule_retry(queue_name, replace(item, attempts=attempt), delay)
            logger.info(f"[{item.job_id}] Retry scheduled in {delay:g}s")
        else:
            self.store.mark_failed(item.job_id, message)

    def _schedule_retry(self, queue_name: str, item: WorkItem, delay: float) -> None:
        task = asyncio.get_running_loop().create_task(
            self._delayed_enqueue(queue_name, item, delay)
        )
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _delayed_enqueue(self, queue_name: str, item: WorkItem, delay: float) -> None:
        await self._sleep(delay)
        job = self.store.get(item.job_id)
        if job is None or job.is_terminal:
            logger.info(f"[{item.job_id}] Dropping retry for inactive job")
            return
        self._enqueue(queue_name, item)

    def _discard_output(self, job_id: str, result: ProcessingResult) -> None:
        """Remove the output of a run whose job was cancelled meanwhile."""
        try:
            os.remove(result.file_path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"[{job_id}] Could not remove orphaned output {result.file_path}: {e}")
            return
        logger.info(f"[{job_id}] Removed output of cancelled job: {result.file_path}")

    def cancel(self, job_id: str) -> str:
        """Cancel an active job or delete a finished one.

        Returns:
            "cancelled" if the job was queued or processing,
            "deleted" if it was already terminal

        Raises:
            NotFoundError: If the job does not exist
        """
        job = self.store.get(job_id)
        if job is None:
            raise NotFoundError(
                "The specified job ID does not exist or has expired", job_id=job_id
            )

        if job.status in (JobStatus.QUEUED, JobStatus.PROCESSING):
            self.store.mark_cancelled(job_id)
            for queue in self._queues.values():
                remaining = [item for item in queue if item.job_id != job_id]
                queue.clear()
                queue.extend(remaining)
            return "cancelled"

        self.store.delete(job_id)
        return "deleted"

    def get_stats(self, queue_name: str = DEFAULT_QUEUE) -> Dict[str, Any]:
        """Queue statistics for health reporting."""
        waiting = len(self._queues.get(queue_name, ()))
        processing = 1 if queue_name in self._active else 0
        return {
            "waiting": waiting,
            "processing": processing,
            "total": waiting + processing,
            "isProcessing": bool(self._draining.get(queue_name)),
            "scheduledRetries": len(self._retry_tasks),
        }

    async def join(self) -> None:
        """Wait until every queue is drained and no retry is pending."""
        while self._drain_tasks or self._retry_tasks:
            await asyncio.gather(
                *self._drain_tasks.values(), *self._retry_tasks, return_exceptions=True
            )

    async def shutdown(self) -> None:
        """Cancel pending retries and running drain tasks."""
        tasks = list(self._retry_tasks) + list(self._drain_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Job runner stopped ({len(tasks)} tasks cancelled)")


__all__ = ["JobRunner", "WorkItem", "DEFAULT_QUEUE"]
