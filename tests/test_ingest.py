"""
Tests for CSV ingestion (api.shared.ingest).

Verifies that:
- N data rows x M header columns yield N raw rows of M entries
- Numeric cells become floats, everything else trimmed strings
- Ragged rows, missing/duplicate headers raise ParseError
- Blank lines and a UTF-8 BOM are tolerated
"""

import pytest

from api.shared.errors import ParseError
from api.shared.ingest import coerce_cell, is_number, parse_csv


class TestRowShape:
    """Row and column counts."""

    @pytest.mark.parametrize("rows,cols", [(1, 2), (5, 3), (40, 7)])
    def test_n_rows_of_m_entries(self, rows, cols):
        header = ",".join(f"c{j}" for j in range(cols))
        body = "\n".join(",".join(str(i * cols + j) for j in range(cols)) for i in range(rows))
        table = parse_csv(f"{header}\n{body}\n")

        assert table.num_rows == rows
        records = list(table.rows())
        assert len(records) == rows
        assert all(len(r) == cols for r in records)
        assert table.columns == [f"c{j}" for j in range(cols)]

    def test_header_only_gives_zero_rows(self):
        table = parse_csv("a,b,c\n")
        assert table.num_rows == 0
        assert table.columns == ["a", "b", "c"]

    def test_blank_lines_skipped(self):
        table = parse_csv("a,b\n\n1,2\n\n3,4\n")
        assert table.num_rows == 2

    def test_bom_stripped_from_header(self):
        table = parse_csv("\ufeffa,b\n1,2\n")
        assert table.columns == ["a", "b"]

    def test_crlf_line_endings(self):
        table = parse_csv("a,b\r\n1,2\r\n3,4\r\n")
        assert table.num_rows == 2
        assert table.column_values("b") == [2.0, 4.0]


class TestCellCoercion:
    """Numeric detection and string trimming."""

    def test_numeric_cells_are_floats(self):
        table = parse_csv("a,b\n1,2.5\n-3,1e3\n")
        assert table.column_values("a") == [1.0, -3.0]
        assert table.column_values("b") == [2.5, 1000.0]
        assert all(isinstance(v, float) for v in table.column_values("a"))

    def test_strings_are_trimmed(self):
        table = parse_csv("a,b\n1,  red \n2,blue\n")
        assert table.column_values("b") == ["red", "blue"]

    def test_quoted_field_with_comma(self):
        table = parse_csv('name,value\n"Smith, J",1\n')
        assert table.column_values("name") == ["Smith, J"]

    @pytest.mark.parametrize("raw", ["nan", "inf", "1,000", "12abc", "", "0x10"])
    def test_non_plain_numbers_stay_strings(self, raw):
        assert isinstance(coerce_cell(raw), str)

    @pytest.mark.parametrize("raw,expected", [("42", 42.0), (" 3.5 ", 3.5), (".5", 0.5), ("+2", 2.0)])
    def test_plain_numbers(self, raw, expected):
        assert coerce_cell(raw) == expected

    def test_is_number_excludes_bool(self):
        assert is_number(1.0)
        assert is_number(3)
        assert not is_number(True)
        assert not is_number("1")

    def test_preview_head(self):
        table = parse_csv("a,b\n1,x\n2,y\n3,z\n")
        assert table.head(2) == [{"a": 1.0, "b": "x"}, {"a": 2.0, "b": "y"}]


class TestParseErrors:
    """Malformed structure fails fast."""

    def test_ragged_row_reports_line(self):
        with pytest.raises(ParseError, match="Line 3: expected 3 cells"):
            parse_csv("a,b,c\n1,2,3\n4,5\n")

    def test_extra_cell(self):
        with pytest.raises(ParseError):
            parse_csv("a,b\n1,2,3\n")

    def test_empty_text(self):
        with pytest.raises(ParseError, match="no header"):
            parse_csv("")

    def test_duplicate_header(self):
        with pytest.raises(ParseError, match="duplicate"):
            parse_csv("a,a\n1,2\n")

    def test_empty_header_name(self):
        with pytest.raises(ParseError, match="empty column name"):
            parse_csv("a,,c\n1,2,3\n")
