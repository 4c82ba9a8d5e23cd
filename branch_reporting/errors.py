"""
Exception hierarchy for the import, commit and export pipeline.

Stream-level and store-level errors abort a job. Row-level rejections are
collected by the reconciliation engine and never escape a batch.
"""

from typing import Optional

from .models.enums import RejectReason


class BranchReportingError(Exception):
    """Base class for all pipeline errors."""


class ParseError(BranchReportingError):
    """The uploaded stream is unreadable or structurally invalid."""


class RowRejection(BranchReportingError):
    """A single row cannot be accepted. Never aborts the batch."""

    def __init__(self, reason: RejectReason, detail: str):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class IdentityLookupError(RowRejection):
    """Customer, account or subject identity could not be resolved."""


class PersistenceError(BranchReportingError):
    """A ledger write failed during commit."""

    def __init__(self, message: str, processed_count: int = 0, row_number: Optional[int] = None):
        super().__init__(message)
        self.processed_count = processed_count
        self.row_number = row_number


class JobNotFound(BranchReportingError):
    """Job id is absent or its entry has expired."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found or expired: {job_id}")
        self.job_id = job_id


class JobAlreadyFinalizedError(RuntimeError):
    """A terminal job was written a second time."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is already {status}; terminal state is write-once")
        self.job_id = job_id
        self.status = status
