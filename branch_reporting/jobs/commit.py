"""
Commit job: apply previously validated rows to the ledger.

Rows are written one at a time with overwrite semantics, so a batch that
fails half way can simply be submitted again.
"""

from datetime import date
from typing import List

import structlog

from ..errors import PersistenceError
from ..ledger import LedgerAccessor
from ..models import ValidatedRow
from .store import JobStore, complete_job, fail_job

logger = structlog.get_logger()


class CommitJob:
    """Persists validated rows without re-running reconciliation."""

    def __init__(self, store: JobStore, ledger: LedgerAccessor):
        self.store = store
        self.ledger = ledger

    def run(self, job_id: str, rows: List[ValidatedRow], report_date: date) -> None:
        log = logger.bind(job_id=job_id, report_date=report_date.isoformat())
        log.info("Commit job started", rows=len(rows))

        processed = 0
        try:
            for row in rows:
                try:
                    self.ledger.apply_balance(
                        account_id=row.account_id,
                        subject_id=row.subject_id,
                        day=report_date,
                        balance=row.new_balance,
                        available_balance=row.new_available_balance,
                    )
                except PersistenceError as e:
                    e.processed_count = processed
                    e.row_number = row.row_number
                    raise
                processed += 1
        except PersistenceError as e:
            log.error(
                "Commit job failed",
                processed=e.processed_count,
                row_number=e.row_number,
                error=str(e),
                exc_info=True,
            )
            fail_job(
                self.store,
                job_id,
                f"Saving stopped at file row {e.row_number}: processed {e.processed_count} of "
                f"{len(rows)} rows before the failure. Rows already saved are kept; "
                f"submitting the same rows again is safe.",
                payload={"processed_count": e.processed_count, "report_date": report_date.isoformat()},
            )
            return
        except Exception:
            log.exception("Commit job failed unexpectedly", processed=processed)
            fail_job(
                self.store,
                job_id,
                f"Saving failed because of an internal error: processed {processed} of "
                f"{len(rows)} rows before the failure.",
                payload={"processed_count": processed, "report_date": report_date.isoformat()},
            )
            return

        # Ledger writes stand even if the status entry is gone
        complete_job(
            self.store,
            job_id,
            {"processed_count": processed, "report_date": report_date.isoformat()},
            message=f"Saved {processed} rows for {report_date.isoformat()}.",
        )
        log.info("Commit job completed", processed=processed)
