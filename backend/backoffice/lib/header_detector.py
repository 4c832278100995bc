"""
Header row detection for bank statements.

Bank exports (KBANK in particular) put a few metadata rows above the real
header, so the header is located by counting which token groups a row mentions.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from backoffice.lib.spreadsheet import norm_col

HEADER_TOKENS: Dict[str, List[str]] = {
    "date": ["transaction date", "date", "วันที่", "วันที่ทำรายการ"],
    "transaction": ["transaction", "description", "รายการ", "รายละเอียด"],
    "withdrawal": ["withdrawal", "withdraw", "debit", "ถอน", "เบิก"],
    "deposit": ["deposit", "credit", "ฝาก"],
    "channel": ["channel", "ช่องทาง", "ประเภท"],
    "balance": ["balance", "ยอดคงเหลือ"],
}

MIN_HEADER_MATCHES = 2
STRONG_HEADER_MATCHES = 4


@dataclass
class HeaderDetection:
    header_row_index: Optional[int]
    data_start_row_index: Optional[int]
    columns: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "header_row_index": self.header_row_index,
            "data_start_row_index": self.data_start_row_index,
            "columns": self.columns,
            "confidence": self.confidence,
        }


def _matches(cell: str, group: str) -> bool:
    return any(token in cell for token in HEADER_TOKENS[group])


def matched_groups(row: Sequence) -> List[str]:
    if not row:
        return []
    cells = [norm_col(cell) if cell is not None else "" for cell in row]
    return [group for group in HEADER_TOKENS if any(_matches(cell, group) for cell in cells)]


def detect_header_row(rows: Sequence[Sequence], max_scan_rows: int = 30) -> HeaderDetection:
    if not rows:
        return HeaderDetection(header_row_index=None, data_start_row_index=None)

    best_index = None
    best_count = 0
    for i in range(min(len(rows), max_scan_rows)):
        count = len(matched_groups(rows[i]))
        if count < MIN_HEADER_MATCHES:
            continue
        if best_index is None or count > best_count:
            best_index, best_count = i, count
        if count >= STRONG_HEADER_MATCHES:
            break

    if best_index is None:
        return HeaderDetection(
            header_row_index=0,
            data_start_row_index=1,
            columns=[str(cell or "").strip() for cell in rows[0]],
            confidence=0.3,
        )

    columns = [str(cell or "").strip() for cell in rows[best_index]]
    return HeaderDetection(
        header_row_index=best_index,
        data_start_row_index=best_index + 1,
        columns=[col for col in columns if col],
        confidence=min(best_count / 5, 1),
    )


def _first_column(columns: Sequence[str], normalized: Sequence[str], group: str) -> Optional[str]:
    for original, col in zip(columns, normalized):
        if _matches(col, group):
            return original
    return None


def suggest_column_mapping(columns: Sequence[str]) -> Dict[str, str]:
    """Guess the statement mapping from header names; keys are only set when found."""
    normalized = [norm_col(col) for col in columns]
    mapping: Dict[str, str] = {}

    txn_date = _first_column(columns, normalized, "date")
    if txn_date is not None:
        mapping["txn_date"] = txn_date

    # the channel column is never the description
    for original, col in zip(columns, normalized):
        if _matches(col, "channel"):
            continue
        if "transaction" in col or _matches(col, "transaction"):
            mapping["description"] = original
            break

    for key, group in (
        ("withdrawal", "withdrawal"),
        ("deposit", "deposit"),
        ("balance", "balance"),
        ("channel", "channel"),
    ):
        found = _first_column(columns, normalized, group)
        if found is not None:
            mapping[key] = found
    return mapping
