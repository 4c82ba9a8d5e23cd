"""Background jobs and the job status store."""

from .store import InMemoryJobStore, JobStore, complete_job, fail_job, run_janitor, submit_job
from .validation import ValidationJob
from .commit import CommitJob
from .export import ExportJob, artifact_path

__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "complete_job",
    "fail_job",
    "run_janitor",
    "submit_job",
    "ValidationJob",
    "CommitJob",
    "ExportJob",
    "artifact_path",
]
