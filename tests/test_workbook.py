"""
Tests for XLSX rendering of the pivot report.
"""

from datetime import date
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from branch_reporting.models import DateColumn, PivotReport, ReportRow
from branch_reporting.reporting import ReportWorkbookRenderer, date_columns, format_day, month_spans


@pytest.fixture
def report():
    start, end = date(2024, 3, 30), date(2024, 4, 1)
    columns = date_columns(start, end)
    row = ReportRow(
        ordinal=1,
        subject_id=1,
        identifier="90001",
        name="Jane Doe",
        role="Universal Banker",
        org_unit="KC Sudirman",
        account_count=2,
        baseline_balance=Decimal("5000000"),
        cells=[
            (date(2024, 3, 30), Decimal("5.50")),
            (date(2024, 3, 31), None),
            (date(2024, 4, 1), Decimal("6.00")),
        ],
        growth_amount=Decimal("1000000"),
        growth_percent=Decimal("20.00"),
    )
    return PivotReport(
        start_date=start,
        end_date=end,
        baseline_date=date(2024, 1, 1),
        columns=columns,
        rows=[row],
    )


@pytest.fixture
def renderer():
    return ReportWorkbookRenderer(title="Daily Managed Balance Report - Universal Banker")


def merged(sheet):
    return {str(cell_range) for cell_range in sheet.merged_cells.ranges}


class TestReportWorkbookRenderer:
    """Header bands, data cells and styling."""

    def test_banner_rows(self, renderer, report):
        sheet = renderer.render(report).active

        assert sheet["A1"].value == "Daily Managed Balance Report - Universal Banker"
        assert sheet["A1"].font.bold
        assert sheet["A1"].font.size == 16
        assert sheet["A2"].value == "Report Period: 30 Mar 2024 to 01 Apr 2024"
        # 7 static + 3 days + 2 growth columns
        assert {"A1:L1", "A2:L2"} <= merged(sheet)

    def test_header_band(self, renderer, report):
        sheet = renderer.render(report).active
        ranges = merged(sheet)

        assert [sheet.cell(row=3, column=col).value for col in range(1, 8)] == [
            "NO", "PN", "NAME", "POSITION", "BRANCH", "ACCOUNT COUNT", "BASELINE (1 JAN 2024)",
        ]
        assert {"A3:A4", "G3:G4", "K3:K4", "L3:L4"} <= ranges
        assert sheet["H3"].value == "MARCH 2024"
        assert "H3:I3" in ranges
        assert sheet["J3"].value == "APRIL 2024"
        assert not any(r.startswith("J3:") for r in ranges)
        assert [sheet.cell(row=4, column=col).value for col in range(8, 11)] == [30, 31, 1]
        assert sheet["K3"].value == "GROWTH"
        assert sheet["L3"].value == "GROWTH (%)"

    def test_header_style(self, renderer, report):
        cell = renderer.render(report).active["A3"]

        assert cell.font.bold
        assert cell.fill.start_color.rgb == "FFD9EAD3"
        assert cell.border.left.style == "thin"
        assert cell.alignment.wrap_text

    def test_data_row(self, renderer, report):
        sheet = renderer.render(report).active

        assert [sheet.cell(row=5, column=col).value for col in range(1, 7)] == [
            1, "90001", "Jane Doe", "Universal Banker", "KC Sudirman", 2,
        ]
        assert sheet["G5"].value == Decimal("5000000")
        assert sheet["H5"].value == Decimal("5.50")
        assert sheet["I5"].value == "-"
        assert sheet["J5"].value == Decimal("6.00")
        assert sheet["K5"].value == Decimal("1000000")
        assert sheet["L5"].value == Decimal("20.00")
        assert sheet.freeze_panes == "A5"

    def test_columns_are_sized(self, renderer, report):
        sheet = renderer.render(report).active
        assert sheet.column_dimensions["G"].width == len("BASELINE (1 JAN 2024)") + 2

    def test_header_only_report(self, renderer):
        empty = PivotReport(
            start_date=date(2024, 3, 3),
            end_date=date(2024, 3, 1),
            baseline_date=date(2024, 1, 1),
        )
        sheet = renderer.render(empty).active

        assert sheet["H3"].value == "GROWTH"
        assert sheet["I3"].value == "GROWTH (%)"
        assert sheet.max_row == 4

    def test_save_round_trip(self, renderer, report, tmp_path):
        path = renderer.save(report, tmp_path / "nested" / "report.xlsx")

        sheet = load_workbook(path).active
        assert sheet["H5"].value == pytest.approx(5.5)
        assert sheet["I5"].value == "-"
        assert sheet["B5"].value == "90001"


class TestLayoutHelpers:

    def test_format_day(self):
        assert format_day(date(2024, 3, 1)) == "01 Mar 2024"
        assert format_day(date(2024, 12, 25), "-") == "25-Dec-2024"

    def test_only_contiguous_months_merge(self):
        columns = [
            DateColumn(date(2024, 3, 1), "MARCH 2024"),
            DateColumn(date(2024, 3, 2), "MARCH 2024"),
            DateColumn(date(2024, 4, 1), "APRIL 2024"),
            DateColumn(date(2024, 3, 3), "MARCH 2024"),
        ]
        assert month_spans(columns) == [
            ("MARCH 2024", 0, 1),
            ("APRIL 2024", 2, 2),
            ("MARCH 2024", 3, 3),
        ]

    def test_no_columns(self):
        assert month_spans([]) == []
