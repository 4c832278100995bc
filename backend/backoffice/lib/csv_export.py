"""
CSV export helpers.

Cells that a spreadsheet would treat as a formula are prefixed with a single
quote; the prefixed value is always quoted.
"""

import re
from typing import Any, Iterable, Sequence

FORMULA_TRIGGER = re.compile(r"^[=+\-@\t\r\n]")
NEEDS_QUOTING = re.compile(r'[,"\n\r]')
UTF8_BOM = "\ufeff"


def escape_csv_field(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    prefixed = False
    # a lone dash is the usual "no value" placeholder, not a formula
    if FORMULA_TRIGGER.match(text) and text != "-":
        text = "'" + text
        prefixed = True
    if prefixed or NEEDS_QUOTING.search(text):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv_row(values: Iterable[Any]) -> str:
    return ",".join(escape_csv_field(v) for v in values)


def build_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]], bom: bool = False) -> str:
    lines = [to_csv_row(headers)]
    lines.extend(to_csv_row(row) for row in rows)
    body = "\n".join(lines)
    return UTF8_BOM + body if bom else body
