"""Job record tracked by the job store."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Any
from uuid import uuid4

from .enums import JobKind, JobStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """
    A unit of asynchronous work.

    Created in PROCESSING when a long-running operation is accepted, and
    moved exactly once to COMPLETED or FAILED by the worker that owns it.
    Callers treat an expired entry the same as a missing one.
    """
    kind: JobKind
    id: str = field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.PROCESSING
    message: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    ttl_seconds: int = 3600

    # Timing
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_status(self) -> Dict[str, Any]:
        """Status document returned to polling clients."""
        return {
            "job_id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "message": self.message,
        }
