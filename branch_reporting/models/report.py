"""Report models for the pivoted balance export."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, List, Tuple


@dataclass(frozen=True)
class DateColumn:
    """One day column of the pivot, with its month band key."""
    day: date
    month_key: str  # e.g. "MARCH 2024"

    @property
    def day_of_month(self) -> int:
        return self.day.day


@dataclass
class ReportRow:
    """
    One subject's report line.

    cells holds one (date, value) pair per date column, in column order.
    A value of None is the explicit no-data marker and is never zero.
    """
    ordinal: int
    subject_id: int
    identifier: str
    name: str
    role: str
    org_unit: str
    account_count: int
    baseline_balance: Decimal
    cells: List[Tuple[date, Optional[Decimal]]] = field(default_factory=list)
    growth_amount: Decimal = Decimal("0")
    growth_percent: Decimal = Decimal("0")


@dataclass
class PivotReport:
    """A fully laid out report, ready to render."""
    start_date: date
    end_date: date
    baseline_date: date
    columns: List[DateColumn] = field(default_factory=list)
    rows: List[ReportRow] = field(default_factory=list)
    skipped_subject_ids: List[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows
