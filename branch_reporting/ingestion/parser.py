"""
Tabular parser for daily balance uploads.

Turns a CSV or XLSX byte stream into RawRow records. The header row is
normalized and mapped through an alias table so the different core-banking
export layouts all land on the same semantic fields.
"""

import csv
import io
import re
import zipfile
from pathlib import PurePath
from typing import Any, Dict, Iterator, List, Optional, Sequence

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import ParseError
from ..models import RawRow, TabularFormat

logger = structlog.get_logger()

# Semantic field -> accepted normalized header names
COLUMN_ALIASES: Dict[str, Sequence[str]] = {
    "cif": ("cif", "ciff_no", "cif_no", "client_cif", "textbox4"),
    "client_name": ("short_name", "client_name", "name", "textbox38"),
    "account_number": ("account_number", "account_no", "textbox15"),
    "staff_code": ("pn_relationship_officer", "pn_ro", "staff_code", "subject"),
    "balance": ("balance", "current_balance"),
    "available_balance": ("available_balance", "availbalance"),
}
REQUIRED_FIELDS = ("cif", "account_number", "balance")
FIELD_LABELS = {
    "cif": "CIF",
    "account_number": "account number",
    "balance": "balance",
}

SUFFIX_FORMATS = {
    ".csv": TabularFormat.CSV,
    ".txt": TabularFormat.CSV,
    ".xlsx": TabularFormat.XLSX,
    ".xlsm": TabularFormat.XLSX,
}

CSV_DELIMITERS = (",", ";", "\t", "|")

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_ACCOUNT_CHARS = re.compile(r"[^A-Za-z0-9]")


def normalize_header(value: Any) -> str:
    """'PN Relationship Officer ' -> 'pn_relationship_officer'."""
    if value is None:
        return ""
    return _NON_ALNUM.sub("_", str(value).strip().lower()).strip("_")


def detect_format(filename: str) -> TabularFormat:
    suffix = PurePath(filename or "").suffix.lower()
    try:
        return SUFFIX_FORMATS[suffix]
    except KeyError:
        raise ParseError(
            f"Unsupported file type '{suffix or filename}'. Upload a .csv or .xlsx file."
        ) from None


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _is_blank(value: Any) -> bool:
    text = _clean_text(value)
    return text == "" or text == "-"


def normalize_account_number(value: Any) -> str:
    return _ACCOUNT_CHARS.sub("", _clean_text(value))


def normalize_staff_code(value: Any) -> Optional[str]:
    """'90001 - Jane Doe' -> '90001'. A dash or empty cell means no staff code."""
    if _is_blank(value):
        return None
    code = _clean_text(value).split(" - ", 1)[0].strip()
    return code or None


class TabularParser:
    """
    Parser for uploaded balance sheets.

    rows() returns a fresh generator every call, so the sequence can be
    restarted from the beginning. Lines are decoded one at a time as the
    generator is consumed, only the header is read up front. Header problems and unreadable streams
    raise ParseError; problems with individual lines are reported on the
    RawRow itself through parse_error.
    """

    def __init__(self, content: bytes, fmt: TabularFormat):
        self.content = content
        self.format = fmt

    @classmethod
    def for_filename(cls, content: bytes, filename: str) -> "TabularParser":
        return cls(content, detect_format(filename))

    def rows(self) -> Iterator[RawRow]:
        records = self._records()
        header = next(records, None)
        if header is None:
            raise ParseError("The uploaded file is empty; no header row was found.")
        mapping = self._map_header(header)
        return self._iter_rows(records, mapping, len(header))

    def _iter_rows(
        self,
        records: Iterator[List[Any]],
        mapping: Dict[str, int],
        width: int,
    ) -> Iterator[RawRow]:
        emitted = 0
        # Header is line 1
        for line_number, cells in enumerate(records, start=2):
            if all(_clean_text(cell) == "" for cell in cells):
                continue
            emitted += 1
            yield self._to_raw_row(line_number, cells, mapping, width)

        if emitted == 0:
            raise ParseError("The uploaded sheet contains a header but no data rows.")

    def _to_raw_row(
        self,
        line_number: int,
        cells: List[Any],
        mapping: Dict[str, int],
        width: int,
    ) -> RawRow:
        def cell(field_name: str) -> Any:
            index = mapping.get(field_name)
            if index is None or index >= len(cells):
                return None
            return cells[index]

        row = RawRow(
            row_number=line_number,
            cif=_clean_text(cell("cif")),
            client_name=_clean_text(cell("client_name")),
            account_number=normalize_account_number(cell("account_number")),
            balance=cell("balance"),
            available_balance=None if _is_blank(cell("available_balance")) else cell("available_balance"),
            staff_code=normalize_staff_code(cell("staff_code")),
        )
        if isinstance(row.balance, str):
            row.balance = row.balance.strip()

        extra = cells[width:]
        if any(not _is_blank(value) for value in extra):
            row.parse_error = f"line has {len(cells)} cells but the header defines {width}"
            return row

        missing = []
        if _is_blank(cell("cif")):
            missing.append(FIELD_LABELS["cif"])
        if not row.account_number:
            missing.append(FIELD_LABELS["account_number"])
        if _is_blank(cell("balance")):
            missing.append(FIELD_LABELS["balance"])
        if missing:
            row.parse_error = "missing required value: " + ", ".join(missing)
        return row

    @staticmethod
    def _map_header(header: List[Any]) -> Dict[str, int]:
        normalized = [normalize_header(cell) for cell in header]
        mapping: Dict[str, int] = {}
        for field_name, aliases in COLUMN_ALIASES.items():
            for alias in aliases:
                if alias in normalized:
                    mapping[field_name] = normalized.index(alias)
                    break

        if not mapping:
            raise ParseError("No recognizable columns were found in the header row.")
        missing = [FIELD_LABELS[name] for name in REQUIRED_FIELDS if name not in mapping]
        if missing:
            raise ParseError("Required column(s) missing from the header: " + ", ".join(missing) + ".")

        logger.debug("Header mapped", columns=mapping)
        return mapping

    # ------------------------------------------------------------------
    # Format readers
    # ------------------------------------------------------------------

    def _records(self) -> Iterator[List[Any]]:
        if self.format == TabularFormat.XLSX:
            return self._xlsx_records()
        return self._csv_records()

    def _csv_records(self) -> Iterator[List[Any]]:
        try:
            text = self.content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"The file is not valid UTF-8 text (byte {e.start}).") from e
        if "\x00" in text:
            raise ParseError("The file contains binary data and cannot be read as CSV.")

        first_line = text.split("\n", 1)[0]
        delimiter = max(CSV_DELIMITERS, key=first_line.count)
        if not first_line.count(delimiter):
            delimiter = ","
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        try:
            yield from reader
        except csv.Error as e:
            raise ParseError(f"The CSV file is malformed near line {reader.line_num}: {e}") from e

    def _xlsx_records(self) -> Iterator[List[Any]]:
        try:
            workbook = load_workbook(io.BytesIO(self.content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise ParseError("The workbook could not be opened; the file may be corrupt.") from e

        try:
            # Only the first sheet carries balances
            for sheet in workbook.worksheets[:1]:
                for values in sheet.iter_rows(values_only=True):
                    cells = list(values)
                    while cells and cells[-1] is None:
                        cells.pop()
                    yield cells
        finally:
            workbook.close()
