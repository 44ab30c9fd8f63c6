"""
Unit tests for CSV and Excel upload parsing.
"""

from io import BytesIO

import pandas as pd
import pytest

from exceptions import SpreadsheetParseError
from parsers.spreadsheet_parser import parse_spreadsheet


class TestParseCsv:
    """Tests for CSV uploads."""

    def test_cells_are_strings(self):
        table = parse_spreadsheet(b"Serial Number,RAM\nSN1,15.7\nSN2,\n", "export.csv")

        assert table.headers == ["Serial Number", "RAM"]
        assert table.rows == [
            {"Serial Number": "SN1", "RAM": "15.7"},
            {"Serial Number": "SN2", "RAM": ""},
        ]
        assert table.row_count == 2

    def test_blank_rows_dropped(self):
        table = parse_spreadsheet(b"A,B\n1,2\n,\n3,4\n", "x.csv")
        assert table.row_count == 2

    def test_headers_trimmed(self):
        table = parse_spreadsheet(b" Serial Number ,Model\nSN1,X1\n", "x.csv")
        assert table.headers[0] == "Serial Number"

    def test_bom_and_semicolons(self):
        content = "\ufeffIMEI;BAN\n3567;31\n".encode("utf-8")
        table = parse_spreadsheet(content, "telus.csv")
        assert table.rows == [{"IMEI": "3567", "BAN": "31"}]

    def test_single_column(self):
        table = parse_spreadsheet(b"IMEI\n3567\n", "x.csv")
        assert table.rows == [{"IMEI": "3567"}]

    def test_latin1(self):
        content = "Subscriber Name,BAN\nRen\xe9e C\xf4t\xe9,1\n".encode("latin-1")
        table = parse_spreadsheet(content, "x.csv")
        assert table.rows[0]["Subscriber Name"] == "Ren\xe9e C\xf4t\xe9"

    def test_path_input(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_bytes(b"A,B\n1,2\n")
        assert parse_spreadsheet(path).rows == [{"A": "1", "B": "2"}]


class TestParseExcel:
    """Tests for Excel uploads."""

    def test_xlsx(self):
        buffer = BytesIO()
        pd.DataFrame({"Service Tag": ["7XK2J93"], "Asset Tag": ["4315"]}).to_excel(buffer, index=False)

        table = parse_spreadsheet(buffer.getvalue(), "template.xlsx")

        assert table.rows == [{"Service Tag": "7XK2J93", "Asset Tag": "4315"}]


class TestParseErrors:
    """Tests for unreadable uploads."""

    def test_empty(self):
        with pytest.raises(SpreadsheetParseError):
            parse_spreadsheet(b"", "x.csv")

    def test_corrupt_excel(self):
        with pytest.raises(SpreadsheetParseError) as exc_info:
            parse_spreadsheet(b"not a zip file", "x.xlsx")
        assert exc_info.value.details["filename"] == "x.xlsx"
