"""Enumerations for the branch balance reporting pipeline."""

from enum import Enum


class JobKind(str, Enum):
    """Kind of asynchronous job tracked by the job store."""
    VALIDATION = "validation"
    COMMIT = "commit"
    EXPORT = "export"


class JobStatus(str, Enum):
    """
    Status of a job.

    PROCESSING: Accepted, worker has not reached a terminal state
    COMPLETED: Terminal, payload holds the result
    FAILED: Terminal, message holds the user-facing reason
    """
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class RejectReason(str, Enum):
    """Why an uploaded row was not accepted."""
    PARSE_ERROR = "parse_error"          # Missing required value or malformed line
    UNKNOWN_CIF = "unknown_cif"
    UNKNOWN_ACCOUNT = "unknown_account"  # Not found under the resolved customer
    UNKNOWN_SUBJECT = "unknown_subject"  # Unknown staff code, or account without owner
    MALFORMED_AMOUNT = "malformed_amount"  # Non-numeric or negative
    DUPLICATE = "duplicate"              # Superseded by a later row in the same file


class TabularFormat(str, Enum):
    """Supported upload formats."""
    CSV = "csv"
    XLSX = "xlsx"
