"""
Background job queue and handlers.

Handlers live in jobs.handlers and are wired up by main.py and cli.py;
this package only exposes the queue so services can enqueue follow-up
work.
"""

from jobs.queue import Job, JobQueue, WorkerPool, get_job_queue

__all__ = [
    "Job",
    "JobQueue",
    "WorkerPool",
    "get_job_queue",
]
