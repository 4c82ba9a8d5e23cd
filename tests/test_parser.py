"""
Tests for the tabular upload parser.
"""

import io

import pytest
from openpyxl import Workbook

from branch_reporting.errors import ParseError
from branch_reporting.ingestion.parser import (
    TabularParser,
    detect_format,
    normalize_header,
    normalize_staff_code,
)
from branch_reporting.models import TabularFormat


def csv_parser(text: str) -> TabularParser:
    return TabularParser(text.encode("utf-8"), TabularFormat.CSV)


def xlsx_bytes(rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestHeaderMapping:

    def test_normalize_header(self):
        assert normalize_header(" PN Relationship Officer ") == "pn_relationship_officer"
        assert normalize_header("Account-Number") == "account_number"
        assert normalize_header(None) == ""

    def test_core_banking_aliases(self):
        """Report-server column names resolve to semantic fields."""
        parser = csv_parser(
            "textbox4,textbox38,textbox15,balance,availbalance,pn_relationship_officer\n"
            "123456,PT Maju Jaya,0001,\"1,000,000\",900000,90001 - Jane Doe\n"
        )
        rows = list(parser.rows())

        assert len(rows) == 1
        row = rows[0]
        assert row.row_number == 2
        assert row.cif == "123456"
        assert row.client_name == "PT Maju Jaya"
        assert row.account_number == "0001"
        assert row.balance == "1,000,000"
        assert row.available_balance == "900000"
        assert row.staff_code == "90001"
        assert row.parse_error is None

    def test_missing_required_column(self):
        parser = csv_parser("cif,account_number\n123456,0001\n")
        with pytest.raises(ParseError, match="balance"):
            parser.rows()

    def test_no_recognizable_columns(self):
        parser = csv_parser("foo,bar\n1,2\n")
        with pytest.raises(ParseError, match="No recognizable columns"):
            parser.rows()


class TestCsvParsing:

    def test_semicolon_delimited(self):
        parser = csv_parser("cif;account_number;balance\n123456;0001;1.000.000,50\n")
        rows = list(parser.rows())
        assert rows[0].balance == "1.000.000,50"

    def test_blank_lines_are_skipped_but_numbering_is_kept(self):
        parser = csv_parser("cif,account_number,balance\n\n123456,0001,10\n,,\n654321,0002,20\n")
        rows = list(parser.rows())
        assert [row.row_number for row in rows] == [3, 5]

    def test_missing_value_marks_row(self):
        parser = csv_parser("cif,account_number,balance\n,0001,10\n123456,0001,\n")
        rows = list(parser.rows())
        assert rows[0].parse_error == "missing required value: CIF"
        assert rows[1].parse_error == "missing required value: balance"
        assert rows[0].duplicate_key is None

    def test_extra_cells_mark_row(self):
        parser = csv_parser("cif,account_number,balance\n123456,0001,10,unexpected\n")
        row = list(parser.rows())[0]
        assert "header defines 3" in row.parse_error

    def test_account_number_is_normalized(self):
        parser = csv_parser("cif,account_number,balance\n123456, 0001-002 ,10\n")
        assert list(parser.rows())[0].account_number == "0001002"

    def test_rows_can_be_restarted(self):
        parser = csv_parser("cif,account_number,balance\n123456,0001,10\n")
        first = [row.to_dict() for row in parser.rows()]
        second = [row.to_dict() for row in parser.rows()]
        assert first == second

    def test_empty_file(self):
        with pytest.raises(ParseError, match="empty"):
            csv_parser("").rows()

    def test_header_without_data(self):
        rows = csv_parser("cif,account_number,balance\n").rows()
        with pytest.raises(ParseError, match="no data rows"):
            list(rows)

    def test_invalid_encoding(self):
        parser = TabularParser(b"cif,account_number,balance\n\xff\xfe,1,2\n", TabularFormat.CSV)
        with pytest.raises(ParseError, match="UTF-8"):
            parser.rows()

    def test_utf8_bom_is_ignored(self):
        parser = TabularParser("\ufeffcif,account_number,balance\n123456,0001,10\n".encode("utf-8"), TabularFormat.CSV)
        assert list(parser.rows())[0].cif == "123456"


class TestXlsxParsing:

    def test_native_cells(self):
        content = xlsx_bytes([
            ["CIF", "Account Number", "Balance", "Available Balance", "PN Relationship Officer"],
            [123456, "0001", 1000000, None, "-"],
        ])
        rows = list(TabularParser.for_filename(content, "balances.xlsx").rows())

        assert len(rows) == 1
        assert rows[0].cif == "123456"
        assert rows[0].balance == 1000000
        assert rows[0].available_balance is None
        assert rows[0].staff_code is None

    def test_rows_can_be_restarted(self):
        content = xlsx_bytes([
            ["CIF", "Account Number", "Balance"],
            [123456, "0001", 10],
            [654321, "0002", 20],
        ])
        parser = TabularParser(content, TabularFormat.XLSX)

        first = parser.rows()
        assert next(first).cif == "123456"
        assert [row.cif for row in parser.rows()] == ["123456", "654321"]
        assert next(first).cif == "654321"

    def test_corrupt_workbook(self):
        parser = TabularParser(b"not a zip archive", TabularFormat.XLSX)
        with pytest.raises(ParseError, match="could not be opened"):
            parser.rows()


class TestFormatDetection:

    def test_known_suffixes(self):
        assert detect_format("balances.CSV") == TabularFormat.CSV
        assert detect_format("balances.xlsx") == TabularFormat.XLSX

    def test_unsupported_suffix(self):
        with pytest.raises(ParseError, match="Unsupported file type"):
            detect_format("balances.pdf")

    def test_staff_code_forms(self):
        assert normalize_staff_code("90001 - Jane Doe") == "90001"
        assert normalize_staff_code("90001") == "90001"
        assert normalize_staff_code(" - ") is None
        assert normalize_staff_code(None) is None
