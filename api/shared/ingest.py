"""
CSV ingestion for uploaded datasets.

Turns already-read CSV text into a ``RawTable``: the ordered header plus one
raw row per data line, each cell coerced to ``float`` when it is a plain
decimal number and kept as a trimmed string otherwise.

The tokenizer is the standard ``csv`` reader (quoted fields, escaped quotes);
pandas' readers pad short rows with NaN, which would hide ragged input, so
the cell-count check happens here before the rows are gathered into a
DataFrame.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Union

import pandas as pd

from .errors import ParseError
from .logger import get_logger

logger = get_logger(__name__)

Cell = Union[float, str]

# Plain decimal literal; rejects nan/inf and digit separators.
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class RawTable:
    """Parsed CSV content.

    Attributes:
        columns: Column names in header order
        frame: Object-dtype DataFrame holding ``float`` or ``str`` cells
    """

    columns: List[str]
    frame: pd.DataFrame

    @property
    def num_rows(self) -> int:
        return int(self.frame.shape[0])

    def rows(self) -> Iterator[Dict[str, Cell]]:
        """Iterate over raw rows as ``{column: cell}`` mappings."""
        for record in self.frame.to_dict(orient="records"):
            yield record

    def column_values(self, name: str) -> List[Cell]:
        return self.frame[name].tolist()

    def head(self, n: int = 10) -> List[Dict[str, Cell]]:
        return self.frame.head(n).to_dict(orient="records")


def coerce_cell(raw: str) -> Cell:
    """Coerce a single CSV cell to a float when it is fully numeric."""
    value = raw.strip()
    if _NUMBER_RE.match(value):
        return float(value)
    return value


def is_number(value: Any) -> bool:
    """True for numeric cells produced by ``coerce_cell`` (bools excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_blank(row: List[str]) -> bool:
    return len(row) == 0 or (len(row) == 1 and not row[0].strip())


def parse_csv(text: str) -> RawTable:
    """Parse CSV text into a RawTable.

    Args:
        text: Full CSV content, header line first

    Returns:
        The parsed table

    Raises:
        ParseError: If the header is missing or invalid, or a data row has a
            different number of cells than the header
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    reader = csv.reader(io.StringIO(text), skipinitialspace=False)

    header: List[str] = []
    records: List[List[Cell]] = []

    try:
        for row in reader:
            if _is_blank(row):
                continue

            if not header:
                header = [name.strip() for name in row]
                _validate_header(header)
                continue

            if len(row) != len(header):
                raise ParseError(
                    f"Line {reader.line_num}: expected {len(header)} cells "
                    f"(header) but found {len(row)}"
                )
            records.append([coerce_cell(cell) for cell in row])
    except csv.Error as e:
        raise ParseError(f"Line {reader.line_num}: {e}") from e

    if not header:
        raise ParseError("CSV content has no header line")

    frame = pd.DataFrame(records, columns=header, dtype=object)
    logger.info("Parsed CSV: %d rows x %d columns", len(records), len(header))
    return RawTable(columns=header, frame=frame)


def _validate_header(header: List[str]) -> None:
    if any(not name for name in header):
        raise ParseError("CSV header contains an empty column name")

    seen = set()
    for name in header:
        if name in seen:
            raise ParseError(f"CSV header contains duplicate column '{name}'")
        seen.add(name)
