"""
Bank statement parsing (KBIZ, K PLUS and generic exports).

Files are read as raw rows, the header row is located with the header detector,
and the first format whose column rules match is used to parse the data rows.
Rows that cannot be parsed are counted in the diagnostics instead of failing
the whole file: one valid row is enough to import.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backoffice.lib.header_detector import detect_header_row
from backoffice.lib.money import ZERO
from backoffice.lib.spreadsheet import SpreadsheetError, read_table

logger = logging.getLogger(__name__)

DATE_FORMATS = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)
EXCEL_EPOCH = date(1899, 12, 30)
MAX_SAMPLE_BAD_ROWS = 5

AMOUNT_NOISE = re.compile(r"[,฿\s()]")
LEADING_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
DATE_LIKE_HEADER = re.compile(r"^\d{2}[/-]\d{2}[/-]\d{4}")

MAPPING_KEYS = ("txn_date", "description", "withdrawal", "deposit", "balance", "channel", "reference_id")


@dataclass
class BankStatementRow:
    txn_date: date
    description: str
    withdrawal: Decimal
    deposit: Decimal
    balance: Optional[Decimal] = None
    channel: Optional[str] = None
    reference_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "txn_date": self.txn_date.isoformat(),
            "description": self.description,
            "withdrawal": float(self.withdrawal),
            "deposit": float(self.deposit),
            "balance": float(self.balance) if self.balance is not None else None,
            "channel": self.channel,
            "reference_id": self.reference_id,
        }


@dataclass
class ParseDiagnostics:
    total_rows: int = 0
    parsed_rows: int = 0
    invalid_date_count: int = 0
    invalid_amount_count: int = 0
    sample_bad_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_bad_row(self, row_index: int, reason: str, data: Any) -> None:
        if len(self.sample_bad_rows) < MAX_SAMPLE_BAD_ROWS:
            self.sample_bad_rows.append({"row_index": row_index, "reason": reason, "data": data})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParsedBankStatement:
    transactions: List[BankStatementRow]
    format_type: str
    detected_columns: List[str]
    auto_mapping: Optional[Dict[str, Optional[str]]]
    requires_manual_mapping: bool
    errors: List[str]
    diagnostics: Optional[ParseDiagnostics] = None
    header_row_index: Optional[int] = None
    confidence: float = 0.0

    @property
    def date_range(self) -> Optional[Tuple[date, date]]:
        if not self.transactions:
            return None
        dates = [t.txn_date for t in self.transactions]
        return min(dates), max(dates)


def parse_bangkok_date(value: Any) -> Optional[date]:
    """Parse a statement date cell; the calendar date is taken as-is (Bangkok)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    # Excel serial day number (1900 date system)
    try:
        serial = float(text)
    except ValueError:
        return None
    if serial <= 0:
        return None
    try:
        return EXCEL_EPOCH + timedelta(days=int(serial))
    except OverflowError:
        return None


def parse_amount(value: Any) -> Decimal:
    """
    Absolute amount of a cell.

    KBANK exports write withdrawals as negative numbers; the column decides the
    meaning, so the sign is dropped.
    """
    if value is None:
        return ZERO
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        if value != value:  # NaN
            return ZERO
        return abs(Decimal(str(value)))

    text = str(value).strip()
    if not text or text == "-":
        return ZERO
    cleaned = AMOUNT_NOISE.sub("", text)
    match = LEADING_NUMBER.match(cleaned)
    if not match:
        return ZERO
    try:
        return abs(Decimal(match.group(0)))
    except InvalidOperation:
        return ZERO


def _find(columns: Sequence[str], *needles: str) -> Optional[str]:
    for col in columns:
        lower = col.lower()
        if any(needle in lower for needle in needles):
            return col
    return None


def detect_kbiz_format(columns: Sequence[str]) -> Optional[Dict[str, Optional[str]]]:
    date_col = _find(columns, "date", "วันที่")
    desc_col = _find(columns, "description", "รายละเอียด", "detail")
    withdrawal_col = _find(columns, "withdrawal", "จ่าย", "debit")
    deposit_col = _find(columns, "deposit", "รับ", "credit")
    balance_col = _find(columns, "balance", "คงเหลือ", "ยอดคงเหลือ")

    if date_col and desc_col and (withdrawal_col or deposit_col):
        return {
            "txn_date": date_col,
            "description": desc_col,
            "withdrawal": withdrawal_col or "",
            "deposit": deposit_col or "",
            "balance": balance_col,
            "channel": None,
            "reference_id": None,
        }
    return None


def detect_kplus_format(columns: Sequence[str]) -> Optional[Dict[str, Optional[str]]]:
    date_col = _find(columns, "วันที่", "date")
    desc_col = _find(columns, "รายการ", "description")
    withdrawal_col = _find(columns, "ถอน", "จ่าย", "withdrawal")
    deposit_col = _find(columns, "ฝาก", "รับ", "deposit")
    balance_col = _find(columns, "คงเหลือ", "balance")
    channel_col = _find(columns, "ช่องทาง", "channel")

    if date_col and desc_col and (withdrawal_col or deposit_col):
        return {
            "txn_date": date_col,
            "description": desc_col,
            "withdrawal": withdrawal_col or "",
            "deposit": deposit_col or "",
            "balance": balance_col,
            "channel": channel_col,
            "reference_id": None,
        }
    return None


def detect_generic_format(columns: Sequence[str]) -> Optional[Dict[str, Optional[str]]]:
    date_col = _find(columns, "date", "วันที่")
    if date_col is None:
        date_col = next((c for c in columns if DATE_LIKE_HEADER.match(c)), None)
    desc_col = _find(columns, "desc", "detail", "รายละเอียด", "remark", "transaction")
    amount_col = _find(columns, "amount", "จำนวน")
    withdrawal_col = _find(columns, "withdrawal", "debit", "จ่าย", "out")
    deposit_col = _find(columns, "deposit", "credit", "รับ", "in")
    balance_col = _find(columns, "balance", "คงเหลือ")

    if not date_col or not (amount_col or withdrawal_col or deposit_col):
        return None

    if not desc_col:
        # prefer a transaction column over whatever sits second
        desc_col = _find(columns, "transaction", "รายการ") or (columns[1] if len(columns) > 1 else "")

    return {
        "txn_date": date_col,
        "description": desc_col,
        "withdrawal": withdrawal_col or amount_col or "",
        "deposit": deposit_col or "",
        "balance": balance_col,
        "channel": None,
        "reference_id": None,
    }


FORMAT_DETECTORS = (
    ("kbiz", detect_kbiz_format),
    ("kplus", detect_kplus_format),
    ("generic", detect_generic_format),
)


def _index_of(header_row: Sequence[str], column: Optional[str]) -> int:
    if not column:
        return -1
    try:
        return list(header_row).index(column)
    except ValueError:
        return -1


def _cell(row: Sequence, index: int) -> Any:
    if index < 0 or index >= len(row):
        return None
    return row[index]


def parse_with_mapping(
    rows: Sequence[Sequence],
    mapping: Dict[str, Optional[str]],
    header_row: Sequence[str],
) -> Tuple[List[BankStatementRow], ParseDiagnostics]:
    """Parse data rows with an explicit column mapping (auto-detected or manual)."""
    transactions: List[BankStatementRow] = []
    diagnostics = ParseDiagnostics(total_rows=len(rows))

    date_idx = _index_of(header_row, mapping.get("txn_date"))
    desc_idx = _index_of(header_row, mapping.get("description"))
    withdrawal_idx = _index_of(header_row, mapping.get("withdrawal"))
    deposit_idx = _index_of(header_row, mapping.get("deposit"))
    balance_idx = _index_of(header_row, mapping.get("balance"))
    channel_idx = _index_of(header_row, mapping.get("channel"))
    ref_idx = _index_of(header_row, mapping.get("reference_id"))

    for i, row in enumerate(rows):
        if not row:
            diagnostics.add_bad_row(i, "Empty or invalid row", list(row or []))
            continue

        date_value = _cell(row, date_idx)
        if not date_value:
            diagnostics.invalid_date_count += 1
            diagnostics.add_bad_row(i, "Missing date value", list(row))
            continue

        txn_date = parse_bangkok_date(date_value)
        if txn_date is None:
            diagnostics.invalid_date_count += 1
            diagnostics.add_bad_row(i, f"Invalid date format: {date_value}", list(row))
            continue

        withdrawal = parse_amount(_cell(row, withdrawal_idx)) if withdrawal_idx >= 0 else ZERO
        deposit = parse_amount(_cell(row, deposit_idx)) if deposit_idx >= 0 else ZERO
        if withdrawal == 0 and deposit == 0:
            diagnostics.invalid_amount_count += 1
            diagnostics.add_bad_row(i, "Both withdrawal and deposit are 0", list(row))
            continue

        diagnostics.parsed_rows += 1
        transactions.append(
            BankStatementRow(
                txn_date=txn_date,
                description=str(_cell(row, desc_idx) or "") if desc_idx >= 0 else "",
                withdrawal=withdrawal,
                deposit=deposit,
                balance=parse_amount(_cell(row, balance_idx)) if balance_idx >= 0 else None,
                channel=str(_cell(row, channel_idx) or "") if channel_idx >= 0 else None,
                reference_id=str(_cell(row, ref_idx) or "") if ref_idx >= 0 else None,
            )
        )

    return transactions, diagnostics


def read_sheet_rows(content: bytes, filename: str) -> List[List[str]]:
    return read_table(content, filename)


def _unknown(errors: List[str], columns: Optional[List[str]] = None) -> ParsedBankStatement:
    return ParsedBankStatement(
        transactions=[],
        format_type="unknown",
        detected_columns=columns or [],
        auto_mapping=None,
        requires_manual_mapping=True,
        errors=errors,
    )


def parse_bank_statement_auto(content: bytes, filename: str) -> ParsedBankStatement:
    try:
        rows = read_sheet_rows(content, filename)
    except SpreadsheetError as exc:
        logger.warning(f"Bank statement read failed for {filename}: {exc}")
        return _unknown([f"Parse error: {exc}"])

    if not rows:
        return _unknown(["No data found in file"])

    detection = detect_header_row(rows, 30)
    header_index = detection.header_row_index if detection.header_row_index is not None else 0
    data_start = detection.data_start_row_index if detection.data_start_row_index is not None else 1
    header_row = rows[header_index]
    columns = detection.columns or [c for c in header_row if c]

    for format_type, detector in FORMAT_DETECTORS:
        mapping = detector(columns)
        if mapping is None:
            continue
        transactions, diagnostics = parse_with_mapping(rows[data_start:], mapping, header_row)
        logger.info(
            f"Parsed {filename} as {format_type}: {diagnostics.parsed_rows}/{diagnostics.total_rows} rows"
        )
        return ParsedBankStatement(
            transactions=transactions,
            format_type=format_type,
            detected_columns=columns,
            auto_mapping=mapping,
            requires_manual_mapping=False,
            errors=[] if transactions else ["No valid transactions parsed"],
            diagnostics=diagnostics,
            header_row_index=detection.header_row_index,
            confidence=detection.confidence,
        )

    result = _unknown(["Cannot auto-detect format. Please use manual column mapping."], columns)
    result.header_row_index = detection.header_row_index
    result.confidence = detection.confidence
    return result


def parse_bank_statement_manual(
    content: bytes, filename: str, mapping: Dict[str, Optional[str]]
) -> ParsedBankStatement:
    """Parse with a user-supplied mapping; the header row is still auto-detected."""
    rows = read_sheet_rows(content, filename)
    if not rows:
        return _unknown(["No data found in file"])

    detection = detect_header_row(rows, 30)
    header_index = detection.header_row_index or 0
    header_row = rows[header_index]
    clean_mapping = {key: mapping.get(key) for key in MAPPING_KEYS}
    transactions, diagnostics = parse_with_mapping(rows[header_index + 1:], clean_mapping, header_row)
    return ParsedBankStatement(
        transactions=transactions,
        format_type="manual",
        detected_columns=detection.columns,
        auto_mapping=clean_mapping,
        requires_manual_mapping=False,
        errors=[] if transactions else ["No valid transactions parsed"],
        diagnostics=diagnostics,
        header_row_index=detection.header_row_index,
        confidence=detection.confidence,
    )
