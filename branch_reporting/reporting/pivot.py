"""
Pivot Report Generator.

Builds one row per subject and one column per calendar day, plus growth
against a 1 January baseline. Days without a snapshot carry None so the
renderer can tell "no data" apart from a zero balance.
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

import structlog

from ..ledger import LedgerAccessor, SubjectRecord
from ..models import DateColumn, PivotReport, ReportRow

logger = structlog.get_logger()

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

MONTH_NAMES = (
    "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
    "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
)


def month_key(day: date) -> str:
    """date(2024, 3, 5) -> 'MARCH 2024'."""
    return f"{MONTH_NAMES[day.month - 1]} {day.year}"


def date_columns(start_date: date, end_date: date) -> List[DateColumn]:
    """One column per day in [start_date, end_date]; empty when start > end."""
    columns = []
    day = start_date
    while day <= end_date:
        columns.append(DateColumn(day=day, month_key=month_key(day)))
        day += timedelta(days=1)
    return columns


def growth_percent(growth: Decimal, baseline: Decimal) -> Decimal:
    """Percentage growth over baseline. Zero when there is no positive baseline."""
    if baseline <= 0:
        return ZERO.quantize(CENT)
    return (growth / baseline * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


class PivotReportGenerator:
    """
    Lays out the balance performance report.

    Date cells are scaled by display_divisor and rounded to two places.
    Baseline and growth amount stay in ledger units.
    """

    def __init__(
        self,
        ledger: LedgerAccessor,
        display_divisor: Decimal = Decimal("1000000"),
        default_role: str = "Universal Banker",
        default_org_unit: str = "-",
    ):
        if display_divisor <= 0:
            raise ValueError("display_divisor must be positive")
        self.ledger = ledger
        self.display_divisor = Decimal(display_divisor)
        self.default_role = default_role
        self.default_org_unit = default_org_unit

    def build(
        self,
        subject_ids: Iterable[int],
        start_date: date,
        end_date: date,
        baseline_year: int,
    ) -> PivotReport:
        baseline_date = date(baseline_year, 1, 1)
        report = PivotReport(
            start_date=start_date,
            end_date=end_date,
            baseline_date=baseline_date,
            columns=date_columns(start_date, end_date),
        )

        subjects = self._resolve_subjects(subject_ids, report.skipped_subject_ids)
        if report.skipped_subject_ids:
            logger.warning("Unknown subjects skipped", subject_ids=report.skipped_subject_ids)
        if not subjects:
            return report

        ids = [subject.id for subject in subjects]
        baselines = self.ledger.snapshots_on(ids, baseline_date)
        in_range = self.ledger.snapshots_between(ids, start_date, end_date)

        for ordinal, subject in enumerate(subjects, start=1):
            report.rows.append(self._build_row(
                ordinal,
                subject,
                report.columns,
                baselines.get(subject.id, ZERO),
                in_range.get(subject.id, {}),
            ))

        logger.info(
            "Pivot report built",
            subjects=len(report.rows),
            days=len(report.columns),
            skipped=len(report.skipped_subject_ids),
        )
        return report

    def _resolve_subjects(self, subject_ids: Iterable[int], skipped: List[int]) -> List[SubjectRecord]:
        subjects = []
        seen = set()
        for subject_id in subject_ids:
            if subject_id in seen:
                continue
            seen.add(subject_id)
            record = self.ledger.get_subject(subject_id)
            if record is None:
                skipped.append(subject_id)
            else:
                subjects.append(record)
        return subjects

    def _build_row(
        self,
        ordinal: int,
        subject: SubjectRecord,
        columns: List[DateColumn],
        baseline: Decimal,
        snapshots: Dict[date, Decimal],
    ) -> ReportRow:
        cells = []
        last_balance: Optional[Decimal] = None
        for column in columns:
            balance = snapshots.get(column.day)
            if balance is None:
                cells.append((column.day, None))
                continue
            last_balance = balance
            cells.append((column.day, self.scale(balance)))

        growth = (baseline if last_balance is None else last_balance) - baseline

        return ReportRow(
            ordinal=ordinal,
            subject_id=subject.id,
            identifier=subject.identifier,
            name=subject.name,
            role=subject.role or self.default_role,
            org_unit=subject.org_unit or self.default_org_unit,
            account_count=subject.account_count,
            baseline_balance=baseline,
            cells=cells,
            growth_amount=growth,
            growth_percent=growth_percent(growth, baseline),
        )

    def scale(self, balance: Decimal) -> Decimal:
        return (balance / self.display_divisor).quantize(CENT, rounding=ROUND_HALF_UP)
