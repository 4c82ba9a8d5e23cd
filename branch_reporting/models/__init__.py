"""Data models for the branch balance reporting pipeline."""

from .enums import (
    JobKind,
    JobStatus,
    RejectReason,
    TabularFormat,
)
from .rows import (
    RawRow,
    ValidatedRow,
    RejectedRow,
    ValidationSummary,
    ValidationOutcome,
)
from .job import Job
from .report import (
    DateColumn,
    ReportRow,
    PivotReport,
)

__all__ = [
    # Enums
    "JobKind",
    "JobStatus",
    "RejectReason",
    "TabularFormat",
    # Rows
    "RawRow",
    "ValidatedRow",
    "RejectedRow",
    "ValidationSummary",
    "ValidationOutcome",
    # Jobs
    "Job",
    # Reports
    "DateColumn",
    "ReportRow",
    "PivotReport",
]
