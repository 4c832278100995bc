"""
Ads performance report parser (TikTok / Shopee exports).

Columns are matched semantically against token tables so Thai, English and
mixed headers all work. Date and cost are required; every other metric falls
back to 0 with a warning.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from backoffice.lib.money import ZERO, round2, safe_ratio, to_decimal
from backoffice.lib.spreadsheet import read_table

logger = logging.getLogger(__name__)

COLUMN_TOKENS: Dict[str, List[str]] = {
    "date": [
        "date", "วันที่", "วันเริ่มต้น", "วันเริ่ม", "เวลาเริ่มต้น", "เวลาเริ่ม",
        "start date", "start time",
    ],
    "campaign": [
        "campaign", "แคมเปญ", "ชื่อแคมเปญ", "ชื่อแคมเปญโฆษณา", "ชื่อ live", "ชื่อไลฟ์",
        "ad name", "creative", "campaign name",
    ],
    "campaign_id": ["campaign id", "รหัสแคมเปญ", "ad group id", "ad id"],
    "cost": ["cost", "spend", "ค่าใช้จ่าย", "ต้นทุน", "expense", "ad spend", "total cost"],
    "gmv": [
        "gmv", "revenue", "รายได้", "รายได้ขั้นต้น", "มูลค่ายอดขาย", "ยอดขาย", "รายได้รวม",
        "conversion value", "total value", "total revenue", "gross revenue",
    ],
    "orders": [
        "order", "orders", "คำสั่งซื้อ", "ยอดการซื้อ", "จำนวนคำสั่งซื้อ", "ออเดอร์", "ยอดออเดอร์",
        "conversion", "conversions", "purchase", "purchases", "sale", "sales",
    ],
    "impressions": ["impression", "impressions", "การแสดงผล", "จำนวนการแสดงผล"],
    "clicks": ["click", "clicks", "คลิก", "จำนวนคลิก"],
    "roas": ["roas", "roi", "return on ad spend", "ผลตอบแทน"],
    "currency": ["currency", "สกุลเงิน"],
}

REQUIRED_FIELDS = {
    "date": "Date (วันที่)",
    "cost": "Cost/Spend (ค่าใช้จ่าย)",
}

MIN_MATCH_SCORE = 25

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%Y.%m.%d",
    "%d.%m.%Y",
)
EXCEL_EPOCH = date(1899, 12, 30)


class ReportFormatError(ValueError):
    def __init__(self, missing: Sequence[str], found: Sequence[str]):
        self.missing = list(missing)
        self.found = list(found)
        super().__init__(
            f"ไม่พบ columns ที่จำเป็น: {', '.join(self.missing)}\n\n"
            f"Columns ที่มีในไฟล์: {', '.join(self.found)}"
        )


@dataclass
class AdsReportRow:
    ad_date: date
    campaign_name: str
    campaign_id: Optional[str]
    spend: Decimal
    revenue: Decimal
    orders: int
    impressions: int = 0
    clicks: int = 0
    roas: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "ad_date": self.ad_date.isoformat(),
            "campaign_name": self.campaign_name,
            "campaign_id": self.campaign_id,
            "spend": float(self.spend),
            "revenue": float(self.revenue),
            "orders": self.orders,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "roas": float(self.roas),
        }


@dataclass
class ParsedAdsReport:
    rows: List[AdsReportRow]
    report_type: str
    mapping: Dict[str, Optional[str]]
    columns: List[str]
    currency: str = "THB"
    skipped_rows: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def total_spend(self) -> Decimal:
        return round2(sum((r.spend for r in self.rows), ZERO))

    @property
    def total_revenue(self) -> Decimal:
        return round2(sum((r.revenue for r in self.rows), ZERO))

    @property
    def total_orders(self) -> int:
        return sum(r.orders for r in self.rows)

    @property
    def dates(self) -> List[date]:
        return sorted({r.ad_date for r in self.rows})

    def summary(self) -> dict:
        dates = self.dates
        return {
            "report_type": self.report_type,
            "currency": self.currency,
            "row_count": len(self.rows),
            "skipped_rows": self.skipped_rows,
            "days_count": len(dates),
            "date_min": dates[0].isoformat() if dates else None,
            "date_max": dates[-1].isoformat() if dates else None,
            "total_spend": float(self.total_spend),
            "total_revenue": float(self.total_revenue),
            "total_orders": self.total_orders,
            "avg_roas": float(round2(safe_ratio(self.total_revenue, self.total_spend))),
            "detected_columns": self.mapping,
            "warnings": self.warnings,
        }


def _normalize(text: str) -> str:
    text = str(text or "").replace("\ufeff", "")
    text = " ".join(text.lower().split())
    for ch in "()[]:":
        text = text.replace(ch, "")
    return text.strip()


def score_column(header: str, tokens: Sequence[str]) -> int:
    normalized = _normalize(header)
    if not normalized:
        return 0
    for token in tokens:
        token = _normalize(token)
        if normalized == token:
            return 100
        if token in normalized:
            return 50
        if normalized in token and len(normalized) > 3:
            return 30
    return 0


def build_column_mapping(headers: Sequence[str]) -> Dict[str, Optional[str]]:
    mapping: Dict[str, Optional[str]] = {}
    for field_name, tokens in COLUMN_TOKENS.items():
        best_score, best_header = 0, None
        for header in headers:
            score = score_column(header, tokens)
            if score > best_score:
                best_score, best_header = score, header
        mapping[field_name] = best_header if best_score > MIN_MATCH_SCORE else None
    return mapping


def parse_report_date(value: Any) -> Optional[date]:
    text = str(value or "").strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        serial = float(text)
    except ValueError:
        serial = None
    if serial is not None:
        if serial <= 0:
            return None
        try:
            return EXCEL_EPOCH + timedelta(days=int(serial))
        except (OverflowError, ValueError):
            return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_numeric(value: Any) -> Decimal:
    text = "".join(ch for ch in str(value or "") if ch.isdigit() or ch in ".-")
    return to_decimal(text)


def _detect_report_type(rows: Sequence[Dict[str, str]], mapping: Dict[str, Optional[str]]) -> str:
    if not (mapping.get("gmv") or mapping.get("orders")):
        return "unknown"
    campaign_col = mapping.get("campaign")
    if campaign_col:
        names = [str(row.get(campaign_col) or "").lower() for row in rows[:10]]
        if any("live" in name or "stream" in name for name in names):
            return "live"
    return "product"


def _records(table: List[List[str]]) -> List[Dict[str, str]]:
    header_index = next((i for i, row in enumerate(table) if any(row)), None)
    if header_index is None:
        return []
    headers = table[header_index]
    records = []
    for row in table[header_index + 1:]:
        if not any(row):
            continue
        records.append({h: (row[i] if i < len(row) else "") for i, h in enumerate(headers) if h})
    return records


def parse_ads_report(content: bytes, filename: str) -> ParsedAdsReport:
    table = read_table(content, filename)
    records = _records(table)
    headers = list(records[0].keys()) if records else [h for h in (table[0] if table else []) if h]

    mapping = build_column_mapping(headers)
    missing = [label for key, label in REQUIRED_FIELDS.items() if not mapping.get(key)]
    if missing:
        raise ReportFormatError(missing, headers)

    warnings = []
    if not mapping.get("campaign"):
        warnings.append("ไม่พบ Campaign - จะใช้ชื่อว่าง")
    if not mapping.get("gmv"):
        warnings.append("ไม่พบ GMV/Revenue - จะใช้ค่า 0")
    if not mapping.get("orders"):
        warnings.append("ไม่พบ Orders - จะใช้ค่า 0")
    if not mapping.get("roas"):
        warnings.append("ไม่พบ ROAS - จะคำนวณจาก GMV/Cost")

    report_type = _detect_report_type(records, mapping)
    if report_type == "unknown":
        warnings.append("ไฟล์นี้ไม่มี sales metrics (GMV/Orders)")

    def cell(record: Dict[str, str], key: str) -> str:
        column = mapping.get(key)
        return record.get(column, "") if column else ""

    rows: List[AdsReportRow] = []
    skipped = 0
    currency = "THB"
    for record in records:
        ad_date = parse_report_date(cell(record, "date"))
        if ad_date is None:
            skipped += 1
            continue

        spend = parse_numeric(cell(record, "cost"))
        revenue = parse_numeric(cell(record, "gmv"))
        roas = parse_numeric(cell(record, "roas"))
        if roas == 0 and spend > 0:
            roas = revenue / spend

        rows.append(
            AdsReportRow(
                ad_date=ad_date,
                campaign_name=cell(record, "campaign").strip(),
                campaign_id=cell(record, "campaign_id").strip() or None,
                spend=round2(spend),
                revenue=round2(revenue),
                orders=int(round(parse_numeric(cell(record, "orders")))),
                impressions=int(parse_numeric(cell(record, "impressions"))),
                clicks=int(parse_numeric(cell(record, "clicks"))),
                roas=round2(roas),
            )
        )
        if len(rows) == 1 and cell(record, "currency"):
            currency = cell(record, "currency").upper()

    logger.info(f"Parsed ads report {filename}: {len(rows)} rows, {skipped} skipped, type={report_type}")
    return ParsedAdsReport(
        rows=rows,
        report_type=report_type,
        mapping=mapping,
        columns=headers,
        currency=currency,
        skipped_rows=skipped,
        warnings=warnings,
    )
