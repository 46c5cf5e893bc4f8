"""
In-process job queue and worker pool.

Two named queues are used:
- ingester_import: "csv" and "url" import jobs
- ingester_media:  "sync-media" jobs, one per SKU

A failed job is retried with exponential backoff
(job_backoff_seconds * 2**(attempt-1)) until job_max_attempts is reached.
Payload and unknown-job errors are not retried.

Jobs stay in memory for status lookups. Only the newest
job_completed_retention completed jobs are kept; failed jobs are kept for
job_failed_ttl_seconds. Eviction runs whenever a job finishes.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
import queue as stdlib_queue
import threading
import time
import uuid
from typing import Any, Callable, Optional
import structlog

from config import settings
from exceptions import InvalidJobPayloadError, JobNotFoundError, UnknownJobError
from models.jobs import JobState, JobStatus

logger = structlog.get_logger(__name__)

# Errors that a retry cannot fix
PERMANENT_ERRORS = (InvalidJobPayloadError, UnknownJobError)


@dataclass
class Job:
    """One unit of queued work."""
    id: str
    queue: str
    name: str
    data: dict[str, Any]
    status: JobStatus = JobStatus.WAITING
    attempts: int = 0
    progress: float = 0.0
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def update_progress(self, fraction: float) -> None:
        """Report progress in [0, 1]."""
        self.progress = min(1.0, max(0.0, float(fraction)))
        logger.debug("job_progress", job_id=self.id, name=self.name, progress=round(self.progress, 3))

    def to_state(self) -> JobState:
        return JobState(
            id=self.id,
            queue=self.queue,
            name=self.name,
            data=self.data,
            status=self.status,
            attempts=self.attempts,
            progress=self.progress,
            result=self.result,
            error=self.error,
            created_at=self.created_at,
            finished_at=self.finished_at,
        )


class JobQueue:
    """
    Named FIFO queues plus a registry of every job seen.

    Thread-safe; producers (routes, merge step, CLI) and worker threads
    share one instance per process.

    Args:
        completed_retention: Completed jobs kept for lookups
        failed_ttl_seconds: How long a failed job is kept
    """

    def __init__(
        self,
        completed_retention: Optional[int] = None,
        failed_ttl_seconds: Optional[float] = None
    ):
        self._lock = threading.Lock()
        self._queues: dict[str, stdlib_queue.Queue] = {}
        self._jobs: dict[str, Job] = {}
        self.completed_retention = (
            completed_retention if completed_retention is not None
            else settings.job_completed_retention
        )
        self.failed_ttl_seconds = (
            failed_ttl_seconds if failed_ttl_seconds is not None
            else settings.job_failed_ttl_seconds
        )
        # Finished job ids, oldest first
        self._completed: deque[str] = deque()
        self._failed: deque[tuple[float, str]] = deque()

    def _queue(self, name: str) -> stdlib_queue.Queue:
        with self._lock:
            if name not in self._queues:
                self._queues[name] = stdlib_queue.Queue()
            return self._queues[name]

    def enqueue(self, queue_name: str, name: str, data: dict[str, Any]) -> Job:
        """
        Add a job.

        Args:
            queue_name: Target queue (QUEUE_IMPORT or QUEUE_MEDIA)
            name: Job name within the queue ("csv", "url", "sync-media")
            data: JSON-serializable payload

        Returns:
            The queued Job
        """
        job = Job(id=uuid.uuid4().hex, queue=queue_name, name=name, data=dict(data))
        with self._lock:
            self._evict(time.monotonic())
            self._jobs[job.id] = job
        self._queue(queue_name).put(job)

        logger.info("job_enqueued", job_id=job.id, queue=queue_name, name=name)
        return job

    def get(self, job_id: str) -> Job:
        """
        Get a job by id.

        Raises:
            JobNotFoundError: If the id is unknown
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def jobs(self, queue_name: Optional[str] = None) -> list[Job]:
        """All known jobs, optionally filtered by queue, oldest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        if queue_name:
            jobs = [j for j in jobs if j.queue == queue_name]
        return sorted(jobs, key=lambda j: j.created_at)

    def next_job(self, queue_name: str, timeout: float = 0.5) -> Optional[Job]:
        """Take the next waiting job, or None after `timeout` seconds."""
        try:
            return self._queue(queue_name).get(timeout=timeout)
        except stdlib_queue.Empty:
            return None

    def retry_later(self, job: Job, delay: float) -> None:
        """Put a job back on its queue after `delay` seconds."""
        job.status = JobStatus.WAITING
        if delay <= 0:
            self._queue(job.queue).put(job)
            return
        timer = threading.Timer(delay, self._queue(job.queue).put, args=(job,))
        timer.daemon = True
        timer.start()

    def pending_count(self) -> int:
        """Jobs that are waiting or running."""
        with self._lock:
            return sum(
                1 for j in self._jobs.values()
                if j.status in (JobStatus.WAITING, JobStatus.ACTIVE)
            )

    def mark_finished(self, job: Job) -> None:
        """Record a completed or failed job and evict history past its limits."""
        now = time.monotonic()
        with self._lock:
            if job.status == JobStatus.COMPLETED:
                self._completed.append(job.id)
            elif job.status == JobStatus.FAILED:
                self._failed.append((now, job.id))
            evicted = self._evict(now)
        if evicted:
            logger.debug("finished_jobs_evicted", count=evicted)

    def _evict(self, now: float) -> int:
        evicted = 0
        while len(self._completed) > self.completed_retention:
            self._jobs.pop(self._completed.popleft(), None)
            evicted += 1
        while self._failed and now - self._failed[0][0] >= self.failed_ttl_seconds:
            _, job_id = self._failed.popleft()
            self._jobs.pop(job_id, None)
            evicted += 1
        return evicted


JobHandler = Callable[[Job], Optional[dict[str, Any]]]


class WorkerPool:
    """
    Worker threads pulling from the job queue.

    Args:
        job_queue: Shared JobQueue
        handlers: Handler per queue name
        concurrency: Thread count per queue name (default 1)
        max_attempts: Attempts before a job is marked failed
        backoff_seconds: Base retry delay
    """

    def __init__(
        self,
        job_queue: JobQueue,
        handlers: dict[str, JobHandler],
        concurrency: Optional[dict[str, int]] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None
    ):
        self.job_queue = job_queue
        self.handlers = handlers
        self.concurrency = concurrency or {}
        self.max_attempts = max_attempts or settings.job_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.job_backoff_seconds
        )
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        """Start worker threads for every queue with a handler."""
        self._stop.clear()
        for queue_name in self.handlers:
            for i in range(max(1, self.concurrency.get(queue_name, 1))):
                thread = threading.Thread(
                    target=self._work,
                    args=(queue_name,),
                    name=f"{queue_name}-{i}",
                    daemon=True
                )
                thread.start()
                self._threads.append(thread)

        logger.info(
            "worker_pool_started",
            queues=list(self.handlers),
            threads=len(self._threads)
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Signal workers to stop and wait for them."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("worker_pool_stopped")

    def run_until_idle(self, poll_seconds: float = 0.2) -> None:
        """Start, wait until no job is waiting or running, then stop."""
        self.start()
        try:
            while self.job_queue.pending_count():
                time.sleep(poll_seconds)
        finally:
            self.stop()

    def _work(self, queue_name: str) -> None:
        while not self._stop.is_set():
            job = self.job_queue.next_job(queue_name)
            if job is not None:
                self.run_job(job)

    def run_job(self, job: Job) -> None:
        """
        Run one attempt of a job.

        Completes it, schedules a retry, or marks it failed.
        """
        handler = self.handlers.get(job.queue)
        job.status = JobStatus.ACTIVE
        job.attempts += 1

        logger.info("job_started", job_id=job.id, name=job.name, attempt=job.attempts)

        try:
            if handler is None:
                raise UnknownJobError(job.queue, job.name)
            result = handler(job)

        except PERMANENT_ERRORS as e:
            self._fail(job, e)

        except Exception as e:
            if job.attempts < self.max_attempts:
                delay = self.backoff_seconds * (2 ** (job.attempts - 1))
                logger.warning(
                    "job_retry_scheduled",
                    job_id=job.id,
                    name=job.name,
                    attempt=job.attempts,
                    delay_seconds=delay,
                    error=str(e),
                    error_type=type(e).__name__
                )
                job.error = str(e)
                self.job_queue.retry_later(job, delay)
            else:
                self._fail(job, e)

        else:
            job.result = result or {}
            job.error = None
            job.progress = 1.0
            job.status = JobStatus.COMPLETED
            job.finished_at = datetime.utcnow()
            logger.info("job_completed", job_id=job.id, name=job.name, attempts=job.attempts)
            self.job_queue.mark_finished(job)

    def _fail(self, job: Job, error: Exception) -> None:
        job.status = JobStatus.FAILED
        job.error = str(error)
        job.finished_at = datetime.utcnow()
        logger.error(
            "job_failed",
            job_id=job.id,
            name=job.name,
            attempts=job.attempts,
            error=str(error),
            error_type=type(error).__name__
        )
        self.job_queue.mark_finished(job)


# Created eagerly: routes, services and workers share one queue
_job_queue = JobQueue()

def get_job_queue() -> JobQueue:
    """Get the process-wide JobQueue."""
    return _job_queue
