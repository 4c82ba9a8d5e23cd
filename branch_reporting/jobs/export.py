"""
Export job: build the pivot report and write it as an XLSX artifact.
"""

from datetime import date
from pathlib import Path
from typing import List

import structlog

from ..models.job import utcnow
from ..reporting import PivotReportGenerator, ReportWorkbookRenderer
from ..reporting.workbook import format_day
from .store import Clock, JobStore, complete_job, fail_job

logger = structlog.get_logger()

DOWNLOAD_NAME = "Balance Performance Report - {day}.xlsx"


def artifact_path(reports_dir: Path, job_id: str) -> Path:
    return Path(reports_dir) / f"balance_report_{job_id}.xlsx"


class ExportJob:
    """Runs the pivot report generator off the request path."""

    def __init__(
        self,
        store: JobStore,
        generator: PivotReportGenerator,
        renderer: ReportWorkbookRenderer,
        reports_dir: Path,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.generator = generator
        self.renderer = renderer
        self.reports_dir = Path(reports_dir)
        self.clock = clock

    def run(
        self,
        job_id: str,
        subject_ids: List[int],
        start_date: date,
        end_date: date,
        baseline_year: int,
    ) -> None:
        log = logger.bind(job_id=job_id)
        log.info(
            "Export job started",
            subjects=len(subject_ids),
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            baseline_year=baseline_year,
        )

        try:
            report = self.generator.build(subject_ids, start_date, end_date, baseline_year)
            path = self.renderer.save(report, artifact_path(self.reports_dir, job_id))
            if not path.is_file():
                raise FileNotFoundError(f"Rendered report missing at {path}")
        except Exception:
            log.exception("Export job failed")
            fail_job(self.store, job_id, "The report could not be generated. Please try again.")
            return

        file_name = DOWNLOAD_NAME.format(day=format_day(self.clock().date(), "-"))
        message = "Report is ready for download."
        if report.skipped_subject_ids:
            message = f"Report is ready; {len(report.skipped_subject_ids)} unknown subject(s) were skipped."

        recorded = complete_job(
            self.store,
            job_id,
            {
                "file_path": str(path),
                "file_name": file_name,
                "skipped_subject_ids": list(report.skipped_subject_ids),
                "subject_count": len(report.rows),
            },
            message=message,
        )
        if not recorded:
            # Nobody can download it any more
            path.unlink(missing_ok=True)
            return
        log.info("Export job completed", path=str(path), subjects=len(report.rows))
