"""
Spreadsheet reading and cell coercion shared by the statement and report parsers.
"""

import csv
import io
import re
from typing import List

import pandas as pd

EXCEL_EXTENSIONS = (".xlsx", ".xlsm", ".xls")


class SpreadsheetError(ValueError):
    pass


def norm_col(name: str) -> str:
    """Normalize a column header for synonym matching (keeps Thai letters)."""
    name = str(name or "").strip().lower()
    name = re.sub(r"[()\[\]:]", "", name)
    return re.sub(r"\s+", " ", name)


def read_table(content: bytes, filename: str) -> List[List[str]]:
    """
    Read the first sheet of a CSV/XLSX file as raw rows of strings.

    No header inference: header detection is up to the caller, since bank
    exports often carry metadata rows above the real header. CSV rows may be
    ragged, so they go through csv.reader rather than a DataFrame.
    """
    if not content:
        raise SpreadsheetError("Empty file")

    lower = (filename or "").lower()
    if lower.endswith(EXCEL_EXTENSIONS):
        engine = "xlrd" if lower.endswith(".xls") else "openpyxl"
        try:
            df = pd.read_excel(
                io.BytesIO(content), sheet_name=0, header=None, dtype=str, keep_default_na=False, engine=engine
            )
        except Exception as exc:
            # each engine raises its own error types for unreadable workbooks
            raise SpreadsheetError(str(exc)) from exc
        raw_rows = df.fillna("").itertuples(index=False, name=None)
    else:
        try:
            text_content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SpreadsheetError(str(exc)) from exc
        raw_rows = csv.reader(io.StringIO(text_content))

    rows = []
    for raw in raw_rows:
        row = [str(cell).strip() for cell in raw]
        # trailing empty cells are noise from ragged exports
        while row and row[-1] == "":
            row.pop()
        rows.append(row)
    return rows
