"""Pivot report layout and XLSX rendering."""

from .pivot import PivotReportGenerator, date_columns, growth_percent, month_key
from .workbook import ReportWorkbookRenderer, format_day, month_spans

__all__ = [
    "PivotReportGenerator",
    "date_columns",
    "growth_percent",
    "month_key",
    "ReportWorkbookRenderer",
    "format_day",
    "month_spans",
]
