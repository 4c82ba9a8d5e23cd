"""
XLSX rendering for the pivot report.

Layout:
    row 1      title, merged across the sheet
    row 2      report period, merged across the sheet
    rows 3-4   header band: static and growth headers merged vertically,
               month names merged across their days, day numbers below
    row 5+     one row per subject
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

import structlog
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..models import DateColumn, PivotReport, ReportRow
from .pivot import MONTH_NAMES

logger = structlog.get_logger()

NO_DATA = "-"
TITLE_ROW = 1
PERIOD_ROW = 2
HEADER_TOP_ROW = 3
HEADER_DAY_ROW = 4
FIRST_DATA_ROW = 5

STATIC_HEADERS = ["NO", "PN", "NAME", "POSITION", "BRANCH", "ACCOUNT COUNT"]
GROWTH_HEADERS = ["GROWTH", "GROWTH (%)"]

AMOUNT_FORMAT = "#,##0.00"
COUNT_FORMAT = "0"
MAX_COLUMN_WIDTH = 50

TITLE_FONT = Font(bold=True, size=16)
HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(start_color="FFD9EAD3", end_color="FFD9EAD3", fill_type="solid")
THIN = Side(style="thin")
THIN_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)


def format_day(day: date, separator: str = " ") -> str:
    """date(2024, 3, 1) -> '01 Mar 2024' (or '01-Mar-2024' with separator '-')."""
    month = MONTH_NAMES[day.month - 1][:3].title()
    return separator.join([f"{day.day:02d}", month, str(day.year)])


def month_spans(columns: List[DateColumn]) -> List[Tuple[str, int, int]]:
    """
    Group contiguous columns sharing a month key.

    Returns (month_key, first_index, last_index) with zero-based, inclusive
    indexes into columns.
    """
    spans: List[Tuple[str, int, int]] = []
    for index, column in enumerate(columns):
        if spans and spans[-1][0] == column.month_key and spans[-1][2] == index - 1:
            key, first, _ = spans[-1]
            spans[-1] = (key, first, index)
        else:
            spans.append((column.month_key, index, index))
    return spans


class ReportWorkbookRenderer:
    """Renders a PivotReport into a styled openpyxl workbook."""

    def __init__(self, title: str = "Daily Managed Balance Report - Universal Banker"):
        self.title = title

    def render(self, report: PivotReport) -> Workbook:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Balance Report"

        static_headers = STATIC_HEADERS + [f"BASELINE (1 JAN {report.baseline_date.year})"]
        first_date_col = len(static_headers) + 1
        first_growth_col = first_date_col + len(report.columns)
        last_col = first_growth_col + len(GROWTH_HEADERS) - 1

        self._write_banner(sheet, report, last_col)
        self._write_headers(sheet, report, static_headers, first_date_col, first_growth_col)

        for offset, row in enumerate(report.rows):
            self._write_row(sheet, FIRST_DATA_ROW + offset, row)

        self._autosize(sheet, last_col)
        sheet.freeze_panes = f"A{FIRST_DATA_ROW}"
        return workbook

    def save(self, report: PivotReport, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        workbook = self.render(report)
        workbook.save(path)
        logger.info("Report workbook written", path=str(path), rows=len(report.rows))
        return path

    def _write_banner(self, sheet: Worksheet, report: PivotReport, last_col: int) -> None:
        last_letter = get_column_letter(last_col)

        title = sheet.cell(row=TITLE_ROW, column=1, value=self.title)
        title.font = TITLE_FONT
        title.alignment = Alignment(horizontal="center")
        sheet.merge_cells(f"A{TITLE_ROW}:{last_letter}{TITLE_ROW}")

        period = sheet.cell(
            row=PERIOD_ROW,
            column=1,
            value=f"Report Period: {format_day(report.start_date)} to {format_day(report.end_date)}",
        )
        period.alignment = Alignment(horizontal="center")
        sheet.merge_cells(f"A{PERIOD_ROW}:{last_letter}{PERIOD_ROW}")

    def _write_headers(
        self,
        sheet: Worksheet,
        report: PivotReport,
        static_headers: List[str],
        first_date_col: int,
        first_growth_col: int,
    ) -> None:
        for offset, label in enumerate(static_headers):
            self._vertical_header(sheet, 1 + offset, label)

        for key, first, last in month_spans(report.columns):
            start_col = first_date_col + first
            end_col = first_date_col + last
            self._header_cell(sheet, HEADER_TOP_ROW, start_col, key)
            if end_col > start_col:
                for col in range(start_col + 1, end_col + 1):
                    self._header_cell(sheet, HEADER_TOP_ROW, col, None)
                sheet.merge_cells(
                    start_row=HEADER_TOP_ROW, start_column=start_col,
                    end_row=HEADER_TOP_ROW, end_column=end_col,
                )

        for offset, column in enumerate(report.columns):
            self._header_cell(sheet, HEADER_DAY_ROW, first_date_col + offset, column.day_of_month)

        for offset, label in enumerate(GROWTH_HEADERS):
            self._vertical_header(sheet, first_growth_col + offset, label)

    def _vertical_header(self, sheet: Worksheet, col: int, label: str) -> None:
        self._header_cell(sheet, HEADER_TOP_ROW, col, label)
        self._header_cell(sheet, HEADER_DAY_ROW, col, None)
        sheet.merge_cells(
            start_row=HEADER_TOP_ROW, start_column=col,
            end_row=HEADER_DAY_ROW, end_column=col,
        )

    @staticmethod
    def _header_cell(sheet: Worksheet, row: int, col: int, value) -> None:
        cell = sheet.cell(row=row, column=col)
        if value is not None:
            cell.value = value
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = THIN_BORDER
        cell.alignment = CENTER

    def _write_row(self, sheet: Worksheet, excel_row: int, row: ReportRow) -> None:
        values = [
            row.ordinal,
            row.identifier,
            row.name,
            row.role,
            row.org_unit,
            row.account_count,
            row.baseline_balance,
        ]
        values.extend(value for _, value in row.cells)
        values.extend([row.growth_amount, row.growth_percent])

        for col, value in enumerate(values, start=1):
            cell = sheet.cell(row=excel_row, column=col, value=self._cell_value(value))
            cell.border = THIN_BORDER
            if value is None:
                cell.alignment = Alignment(horizontal="center")
            elif isinstance(value, Decimal):
                cell.number_format = AMOUNT_FORMAT
            elif isinstance(value, int):
                cell.number_format = COUNT_FORMAT

    @staticmethod
    def _cell_value(value: Optional[object]):
        if value is None:
            return NO_DATA
        return value

    @staticmethod
    def _autosize(sheet: Worksheet, last_col: int) -> None:
        # Banner rows are merged across the sheet and would skew column A
        for col in range(1, last_col + 1):
            max_length = 0
            for (value,) in sheet.iter_rows(
                min_row=HEADER_TOP_ROW, min_col=col, max_col=col, values_only=True
            ):
                if value is not None:
                    max_length = max(max_length, len(str(value)))
            sheet.column_dimensions[get_column_letter(col)].width = min(max_length + 2, MAX_COLUMN_WIDTH)
