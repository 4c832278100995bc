"""
Sales order export parser.

TikTok Shop "OrderSKUList" exports are recognised by their exact headers and
carry a description row under the header, which is skipped. Other files go
through a generic column table. Order timestamps are Bangkok wall-clock time
and come out as naive UTC.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from backoffice.lib.bangkok_time import BANGKOK_TZ, to_bangkok_date, to_utc_naive
from backoffice.lib.money import ZERO, round2, to_decimal
from backoffice.lib.spreadsheet import norm_col, read_table

logger = logging.getLogger(__name__)

TIKTOK_COLUMNS: Dict[str, str] = {
    "order_id": "Order ID",
    "sku": "SKU ID",
    "seller_sku": "Seller SKU",
    "order_date": "Created Time",
    "paid_at": "Paid Time",
    "shipped_at": "Shipped Time",
    "delivered_at": "Delivered Time",
    "cancelled_at": "Cancelled Time",
    "status": "Order Status",
    "substatus": "Order Substatus",
    "product_name": "Product Name",
    "variation": "Variation",
    "quantity": "Quantity",
    "total_amount": "SKU Subtotal After Discount",
    "order_amount": "Order Amount",
    "tracking_number": "Tracking ID",
}
TIKTOK_REQUIRED = ("order_id", "product_name", "quantity", "order_date")

GENERIC_COLUMNS: Dict[str, List[str]] = {
    "order_id": ["order id", "order_id", "order no", "order number", "เลขที่คำสั่งซื้อ", "หมายเลขคำสั่งซื้อ"],
    "product_name": ["product name", "product", "item name", "ชื่อสินค้า", "สินค้า"],
    "quantity": ["quantity", "qty", "จำนวน"],
    "total_amount": ["total amount", "amount", "total", "line total", "ยอดรวม", "ยอดขาย", "ราคารวม"],
    "order_date": ["order date", "created time", "date", "วันที่สั่งซื้อ", "วันที่"],
    "status": ["status", "order status", "สถานะ", "สถานะคำสั่งซื้อ"],
    "sku": ["sku", "sku id", "รหัสสินค้า"],
    "seller_sku": ["seller sku", "เลข sku ผู้ขาย"],
    "tracking_number": ["tracking id", "tracking number", "เลขพัสดุ"],
}
GENERIC_REQUIRED = ("order_id", "product_name", "quantity", "total_amount", "order_date")

DATETIME_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
)
EXCEL_EPOCH = datetime(1899, 12, 30)
ORDER_ID_PATTERN = re.compile(r"^[0-9A-Za-z_-]+$")


class SalesFormatError(ValueError):
    pass


@dataclass
class SalesRowError:
    row: int
    field: Optional[str]
    message: str

    def to_dict(self) -> dict:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass
class SalesLine:
    row_number: int
    order_id: str
    product_name: str
    quantity: int
    total_amount: Decimal
    order_date: datetime
    status: str
    status_group: str
    source_platform: str
    platform_status: Optional[str] = None
    sku: Optional[str] = None
    seller_sku: Optional[str] = None
    tracking_number: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @property
    def unit_price(self) -> Decimal:
        if not self.quantity:
            return ZERO
        return round2(self.total_amount / self.quantity)

    def line_hash(self, user_id: str) -> str:
        """Identity of an order line across re-exports of overlapping periods."""
        key = "|".join(
            [
                user_id,
                self.source_platform or "",
                self.order_id,
                self.product_name,
                str(self.quantity),
                str(round2(self.total_amount)),
            ]
        )
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "order_id": self.order_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "seller_sku": self.seller_sku,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "total_amount": float(self.total_amount),
            "order_date": self.order_date.isoformat(),
            "status": self.status,
            "status_group": self.status_group,
            "platform_status": self.platform_status,
            "tracking_number": self.tracking_number,
        }


@dataclass
class ParsedSalesFile:
    import_type: str
    lines: List[SalesLine]
    errors: List[SalesRowError] = field(default_factory=list)
    skipped_rows: int = 0

    @property
    def order_ids(self) -> set:
        return {line.order_id for line in self.lines}

    @property
    def dates(self) -> List[date]:
        return sorted({to_bangkok_date(line.order_date) for line in self.lines})

    @property
    def total_revenue(self) -> Decimal:
        # cancelled and not-yet-completed lines are not revenue
        return round2(sum((line.total_amount for line in self.lines if line.status == "completed"), ZERO))

    def summary(self) -> dict:
        dates = self.dates
        order_count = len(self.order_ids)
        return {
            "import_type": self.import_type,
            "line_count": len(self.lines),
            "total_orders": order_count,
            "unique_order_ids": order_count,
            "total_revenue": float(self.total_revenue),
            "date_min": dates[0].isoformat() if dates else None,
            "date_max": dates[-1].isoformat() if dates else None,
            "skipped_rows": self.skipped_rows,
            "errors": [e.to_dict() for e in self.errors],
        }


def parse_sales_datetime(value: str) -> Optional[datetime]:
    """Bangkok wall-clock text (or an Excel serial) to naive UTC."""
    text = str(value or "").strip()
    if not text:
        return None
    parsed = None
    for fmt in DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            serial = float(text)
        except ValueError:
            return None
        if serial <= 0:
            return None
        try:
            parsed = EXCEL_EPOCH + timedelta(days=serial)
        except OverflowError:
            return None
    return to_utc_naive(parsed.replace(tzinfo=BANGKOK_TZ))


def parse_amount(value: str) -> Decimal:
    """Currency symbols and thousands separators are dropped."""
    return to_decimal(re.sub(r"[^0-9.\-]", "", str(value or "")))


def normalize_status(status: Optional[str], substatus: Optional[str] = None) -> str:
    """pending / completed / cancelled; the substatus is the more specific of the two."""
    sub = (substatus or "").lower()
    if sub:
        if "ยกเลิก" in sub or "คืนสินค้า" in sub:
            return "cancelled"
        if "จัดส่งแล้ว" in sub or "ส่งสำเร็จ" in sub or "จัดส่งสำเร็จ" in sub:
            return "completed"
    text = (status or "").lower()
    if "ยกเลิก" in text:
        return "cancelled"
    if "delivered" in text or "completed" in text:
        return "completed"
    if "cancel" in text or "return" in text:
        return "cancelled"
    return "pending"


def status_group_for(
    status: str,
    platform_text: str,
    shipped_at: Optional[datetime] = None,
    delivered_at: Optional[datetime] = None,
) -> str:
    if status == "cancelled":
        return "cancelled"
    text = platform_text.lower()
    if delivered_at is not None or "delivered" in text or "ส่งสำเร็จ" in text:
        return "delivered"
    if status == "completed":
        return "completed"
    if shipped_at is not None or "shipped" in text or "transit" in text or "ที่จัดส่ง" in text or "ขนส่ง" in text:
        return "shipped"
    return "pending"


def _locate_header(rows: List[List[str]]) -> Optional[int]:
    for index, row in enumerate(rows[:20]):
        normalized = {norm_col(cell) for cell in row}
        if normalized & set(GENERIC_COLUMNS["order_id"]):
            return index
    return None


def _map_columns(header: Sequence[str]):
    """Returns (import_type, field -> column index)."""
    exact = {cell.strip(): i for i, cell in enumerate(header)}
    if all(TIKTOK_COLUMNS[name] in exact for name in TIKTOK_REQUIRED):
        mapping = {name: exact[col] for name, col in TIKTOK_COLUMNS.items() if col in exact}
        return "tiktok_shop", mapping

    normalized = [norm_col(cell) for cell in header]
    mapping = {}
    for name, synonyms in GENERIC_COLUMNS.items():
        for synonym in synonyms:
            if synonym in normalized:
                mapping[name] = normalized.index(synonym)
                break
    missing = [name for name in GENERIC_REQUIRED if name not in mapping]
    if missing:
        raise SalesFormatError(
            f"Missing columns: {', '.join(missing)}. Found: {', '.join(c for c in header if c)}"
        )
    return "generic", mapping


def parse_sales_file(content: bytes, filename: str, source_platform: str = "tiktok_shop") -> ParsedSalesFile:
    """
    Parse an order-line export into SalesLine rows.

    Row problems (bad date, missing product, non-positive quantity) are
    collected per row and the row is left out; a missing header raises
    SalesFormatError. TikTok files always report source_platform tiktok_shop.
    """
    rows = read_table(content, filename)
    header_index = _locate_header(rows)
    if header_index is None:
        raise SalesFormatError("Order ID column not found")
    header = rows[header_index]
    import_type, mapping = _map_columns(header)
    platform = "tiktok_shop" if import_type == "tiktok_shop" else source_platform

    def cell(row: List[str], name: str) -> str:
        index = mapping.get(name)
        if index is None or index >= len(row):
            return ""
        return row[index].strip()

    parsed = ParsedSalesFile(import_type=import_type, lines=[])
    for offset, row in enumerate(rows[header_index + 1:]):
        row_number = header_index + offset + 2
        order_id = cell(row, "order_id")
        # blank rows and the description row under the TikTok header
        if not order_id or not ORDER_ID_PATTERN.match(order_id):
            parsed.skipped_rows += 1
            continue

        order_date = parse_sales_datetime(cell(row, "order_date"))
        if order_date is None:
            parsed.errors.append(SalesRowError(row_number, "order_date", "Invalid order date"))
            continue
        product_name = cell(row, "product_name")
        if not product_name:
            parsed.errors.append(SalesRowError(row_number, "product_name", "Missing product name"))
            continue
        quantity_value = parse_amount(cell(row, "quantity"))
        if quantity_value <= 0 or quantity_value != quantity_value.to_integral_value():
            parsed.errors.append(SalesRowError(row_number, "quantity", "Quantity must be a positive whole number"))
            continue

        raw_status = cell(row, "status")
        substatus = cell(row, "substatus")
        status = normalize_status(raw_status, substatus)
        if cell(row, "cancelled_at"):
            status = "cancelled"
        shipped_at = parse_sales_datetime(cell(row, "shipped_at"))
        delivered_at = parse_sales_datetime(cell(row, "delivered_at"))
        platform_status = substatus or raw_status or None

        parsed.lines.append(
            SalesLine(
                row_number=row_number,
                order_id=order_id,
                product_name=product_name,
                quantity=int(quantity_value),
                total_amount=round2(parse_amount(cell(row, "total_amount"))),
                order_date=order_date,
                status=status,
                status_group=status_group_for(status, f"{raw_status} {substatus}", shipped_at, delivered_at),
                source_platform=platform,
                platform_status=platform_status,
                sku=cell(row, "sku") or None,
                seller_sku=cell(row, "seller_sku") or None,
                tracking_number=cell(row, "tracking_number") or None,
                paid_at=parse_sales_datetime(cell(row, "paid_at")),
                shipped_at=shipped_at,
                delivered_at=delivered_at,
            )
        )

    logger.info(
        f"Parsed sales file {filename}: {import_type}, {len(parsed.lines)} lines, "
        f"{len(parsed.errors)} errors, {parsed.skipped_rows} skipped"
    )
    return parsed
