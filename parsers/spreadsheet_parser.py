"""
Load uploaded CSV or Excel files into a table of string cells.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Union

import pandas as pd
import structlog

from exceptions import SpreadsheetParseError

logger = structlog.get_logger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")
CSV_ENCODINGS = ("utf-8-sig", "latin-1", "cp1252")
CSV_DELIMITERS = (",", ";", "\t", "|")


@dataclass
class SpreadsheetTable:
    """Rectangular table; blank cells are empty strings."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _frame_to_table(df: pd.DataFrame) -> SpreadsheetTable:
    df = df.fillna("")
    df.columns = [str(col).strip() for col in df.columns]
    # Drop rows where every cell is blank
    df = df[~(df.astype(str).apply(lambda col: col.str.strip()) == "").all(axis=1)]
    headers = list(df.columns)
    rows = [
        {header: str(value) for header, value in zip(headers, record)}
        for record in df.itertuples(index=False, name=None)
    ]
    return SpreadsheetTable(headers=headers, rows=rows)


def _detect_delimiter(content: bytes) -> str:
    """Most frequent candidate delimiter in the header line (comma by default)."""
    header = content.split(b"\n", 1)[0]
    counts = {d: header.count(d.encode()) for d in CSV_DELIMITERS}
    best = max(CSV_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ","


def _load_csv(content: bytes) -> pd.DataFrame:
    sep = _detect_delimiter(content)
    last_error = None
    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(
                BytesIO(content),
                dtype=str,
                keep_default_na=False,
                encoding=encoding,
                sep=sep,
            )
        except UnicodeDecodeError as e:
            last_error = e
            continue
    raise last_error or ValueError("Could not decode CSV")


def _load_excel(content: bytes) -> pd.DataFrame:
    return pd.read_excel(BytesIO(content), engine="openpyxl", dtype=str, keep_default_na=False)


def parse_spreadsheet(file: Union[str, Path, bytes], filename: str = "") -> SpreadsheetTable:
    """
    Parse a CSV or XLSX upload.

    Args:
        file: File path or raw bytes
        filename: Original name, used to pick the reader for raw bytes

    Raises:
        SpreadsheetParseError: If the file cannot be read
    """
    if isinstance(file, (str, Path)):
        path = Path(file)
        filename = filename or path.name
        content = path.read_bytes()
    else:
        content = file

    if not content:
        raise SpreadsheetParseError("Uploaded file is empty", details={"filename": filename})

    is_excel = filename.lower().endswith(EXCEL_SUFFIXES)
    logger.info("parsing_spreadsheet", filename=filename, excel=is_excel, size=len(content))

    try:
        df = _load_excel(content) if is_excel else _load_csv(content)
    except Exception as e:
        logger.error("spreadsheet_read_failed", filename=filename, error=str(e))
        raise SpreadsheetParseError(
            message="Failed to read spreadsheet",
            details={"filename": filename, "original_error": str(e)}
        )

    table = _frame_to_table(df)
    logger.info("spreadsheet_parsed", filename=filename, rows=table.row_count, columns=len(table.headers))
    return table
