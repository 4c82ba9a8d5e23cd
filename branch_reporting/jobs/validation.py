"""
Validation job: parse an uploaded sheet and reconcile it against the ledger.
"""

from datetime import date
from pathlib import Path

import structlog

from ..errors import ParseError
from ..ingestion import TabularParser
from ..ledger import LedgerAccessor
from ..reconciliation import ReconciliationEngine
from .store import JobStore, complete_job, fail_job

logger = structlog.get_logger()


class ValidationJob:
    """Runs Parser -> ReconciliationEngine off the request path."""

    def __init__(self, store: JobStore, ledger: LedgerAccessor):
        self.store = store
        self.ledger = ledger

    def run(self, job_id: str, source_path: Path, filename: str, report_date: date) -> None:
        """
        Validate one stored upload and record the outcome on the job.

        The stored upload is removed afterwards whatever the outcome.
        """
        log = logger.bind(job_id=job_id, filename=filename)
        log.info("Validation job started", report_date=report_date.isoformat())

        try:
            content = Path(source_path).read_bytes()
            parser = TabularParser.for_filename(content, filename)
            outcome = ReconciliationEngine(self.ledger).reconcile(parser.rows(), report_date)
        except ParseError as e:
            log.warning("Upload could not be parsed", error=str(e))
            fail_job(self.store, job_id, f"The file could not be read: {e}")
            return
        except OSError:
            log.exception("Stored upload could not be read")
            fail_job(self.store, job_id, "The uploaded file could not be read from temporary storage.")
            return
        except Exception:
            log.exception("Validation job failed")
            fail_job(self.store, job_id, "Validation failed because of an internal error. Please try again.")
            return
        finally:
            self._discard(source_path)

        summary = outcome.summary
        recorded = complete_job(
            self.store,
            job_id,
            outcome.to_payload(report_date),
            message=(
                f"Validation complete: {summary.valid_rows} valid and "
                f"{summary.rejected_rows} rejected of {summary.total_rows_in_source} rows."
            ),
        )
        if not recorded:
            return
        log.info(
            "Validation job completed",
            valid=summary.valid_rows,
            rejected=summary.rejected_rows,
        )

    @staticmethod
    def _discard(source_path: Path) -> None:
        try:
            Path(source_path).unlink(missing_ok=True)
        except OSError:
            logger.warning("Temporary upload could not be removed", path=str(source_path))
