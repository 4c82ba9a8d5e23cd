"""
Job store: keyed, TTL-bounded status records for background work.

Status reads never wait on a running job; they see whatever the worker has
recorded so far. Expired entries are indistinguishable from missing ones.
"""

import asyncio
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

import structlog

from ..errors import JobAlreadyFinalizedError, JobNotFound
from ..models import Job, JobKind, JobStatus
from ..models.job import utcnow

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class JobStore(Protocol):
    """Interface for any TTL-capable job status store."""

    def put(self, job: Job) -> None:
        ...

    def get(self, job_id: str) -> Optional[Job]:
        ...

    def complete(self, job_id: str, payload: Dict[str, Any], message: str = "") -> Job:
        ...

    def fail(self, job_id: str, message: str, payload: Optional[Dict[str, Any]] = None) -> Job:
        ...

    def evict(self, job_id: str) -> None:
        ...

    def sweep(self) -> int:
        ...


class InMemoryJobStore:
    """
    Process-local job store guarded by a lock.

    get() hands out copies, so callers never observe a record half way
    through a transition.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def put(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._live(job_id)
            return replace(job, payload=dict(job.payload)) if job else None

    def complete(self, job_id: str, payload: Dict[str, Any], message: str = "") -> Job:
        return self._finalize(job_id, JobStatus.COMPLETED, message, payload)

    def fail(self, job_id: str, message: str, payload: Optional[Dict[str, Any]] = None) -> Job:
        return self._finalize(job_id, JobStatus.FAILED, message, payload or {})

    def evict(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.is_expired(now)]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.debug("Expired jobs swept", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _live(self, job_id: str) -> Optional[Job]:
        # Caller holds the lock
        job = self._jobs.get(job_id)
        if job is not None and job.is_expired(self._clock()):
            del self._jobs[job_id]
            return None
        return job

    def _finalize(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        payload: Dict[str, Any],
    ) -> Job:
        with self._lock:
            job = self._live(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status.is_terminal:
                raise JobAlreadyFinalizedError(job_id, job.status.value)
            job.status = status
            job.message = message
            job.payload = dict(payload)
            job.updated_at = self._clock()
            return replace(job, payload=dict(job.payload))


def submit_job(
    store: JobStore,
    kind: JobKind,
    ttl_seconds: int,
    message: str = "",
    clock: Optional[Clock] = None,
) -> Job:
    """Record a new processing job before its worker is scheduled."""
    now = (clock or utcnow)()
    job = Job(kind=kind, message=message, ttl_seconds=ttl_seconds, created_at=now, updated_at=now)
    store.put(job)
    logger.info("Job submitted", job_id=job.id, kind=kind.value)
    return job


def complete_job(store: JobStore, job_id: str, payload: Dict[str, Any], message: str = "") -> bool:
    """
    Record a worker's result. Returns False when the job expired meanwhile.

    The result is discarded in that case; nobody can poll for it any more.
    """
    try:
        store.complete(job_id, payload, message=message)
    except JobNotFound:
        logger.warning("Job expired before completion, result discarded", job_id=job_id)
        return False
    return True


def fail_job(
    store: JobStore,
    job_id: str,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
) -> bool:
    """Record a worker's failure. Returns False when the job expired meanwhile."""
    try:
        store.fail(job_id, message, payload=payload)
    except JobNotFound:
        logger.warning("Job expired before failure was recorded", job_id=job_id, reason=message)
        return False
    return True


async def run_janitor(store: JobStore, interval_seconds: float) -> None:
    """Sweep expired jobs forever. Cancel the task to stop it."""
    logger.info("Job janitor started", interval_seconds=interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                store.sweep()
            except Exception:
                logger.exception("Job sweep failed")
    except asyncio.CancelledError:
        logger.info("Job janitor stopped")
        raise
