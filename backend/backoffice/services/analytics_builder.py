"""
Analytics builder: per-day metric table with an optional computed column.

Each metric on the canvas is fetched for the date range and bucketed by
Bangkok date; a user formula over the metric slots gives the computed column.
"""

import logging
import re
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import duplicate, not_found, validation_error
from backoffice.lib.analytics_expression import ExpressionError, evaluate_expression, validate_expression
from backoffice.lib.bangkok_time import (
    export_timestamp,
    format_bangkok,
    iter_dates,
    range_bounds_utc,
    to_bangkok_date,
    utc_now,
)
from backoffice.lib.csv_export import build_csv
from backoffice.lib.money import ZERO, as_float, round2, sum_signed, to_decimal
from backoffice.models.ads import AdDailyPerformance
from backoffice.models.analytics_preset import AnalyticsPreset
from backoffice.models.expense import Expense
from backoffice.models.inventory import InventoryCogsAllocation
from backoffice.models.sales_order import SalesOrder
from backoffice.schemas.analytics import AnalyticsDefinition, DateRange, MetricRef
from backoffice.services.daily_pl import expenses_by_day, revenue_by_day

logger = logging.getLogger(__name__)

SIMPLE_METRICS = {
    "revenue": "Revenue",
    "advertising": "Advertising",
    "cogs": "COGS",
    "operating": "Operating",
    "orders": "Orders",
    "units": "Units",
}
AVAILABLE_KINDS = ("metric", "ads_spend", "expense_subcategory")
FUNNEL_METRIC_LABELS = {"orders": "Orders", "revenue": "Revenue", "units": "Units"}
FUNNEL_STAGE_LABELS = {"all": "All", "cancel": "Cancelled", "refund": "Refunded", "ship": "Shipped"}

NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _normalize(text: str, max_length: int = 15) -> str:
    return NON_ALNUM.sub("_", (text or "").lower()).strip("_")[:max_length]


def is_metric_available(ref: MetricRef) -> bool:
    if ref.kind == "metric":
        return ref.key in SIMPLE_METRICS
    return ref.kind in AVAILABLE_KINDS


def metric_slot(ref: MetricRef) -> str:
    """Identifier a formula uses to refer to the metric."""
    if ref.kind == "metric":
        return ref.key or ""
    if ref.kind == "ads_spend":
        campaign_type = ref.campaign_type or "all"
        return "ads_all" if campaign_type == "all" else f"ads_{campaign_type}"
    if ref.kind == "expense_subcategory":
        return f"x_{(ref.category or '')[:2].lower()}_{_normalize(ref.subcategory)}"
    if ref.kind == "funnel":
        return f"fn_{ref.metric}_{ref.stage}"
    return f"{ref.kind}_{_normalize(ref.key)}"


def metric_label(ref: MetricRef) -> str:
    if ref.kind == "metric":
        return SIMPLE_METRICS.get(ref.key, ref.key or "")
    if ref.kind == "ads_spend":
        campaign_type = ref.campaign_type or "all"
        return "Ads (All)" if campaign_type == "all" else f"Ads ({campaign_type.capitalize()})"
    if ref.kind == "expense_subcategory":
        return f"{ref.subcategory} ({ref.category})"
    if ref.kind == "funnel":
        stage = FUNNEL_STAGE_LABELS.get(ref.stage, ref.stage)
        metric = FUNNEL_METRIC_LABELS.get(ref.metric, ref.metric)
        return f"{stage} {metric}"
    if ref.kind == "fees":
        return f"Fees ({ref.key})"
    return f"VAT ({ref.key})"


def migrate_definition(raw: Any) -> AnalyticsDefinition:
    """
    Normalize a stored or submitted definition.

    Metrics given as plain keys become simple metric refs; definitions that
    are not a mapping come back empty.
    """
    if isinstance(raw, AnalyticsDefinition):
        data = raw.model_dump()
    elif isinstance(raw, dict):
        data = dict(raw)
    else:
        return AnalyticsDefinition()

    date_range = data.get("date_range") or data.get("dateRange") or {}
    expression = data.get("expression")
    expression_label = data.get("expression_label") or data.get("expressionLabel")
    try:
        metrics = []
        for item in data.get("metrics") or []:
            if isinstance(item, str):
                metrics.append(MetricRef(kind="metric", key=item))
            elif isinstance(item, MetricRef):
                metrics.append(item)
            elif isinstance(item, dict):
                metrics.append(MetricRef(**item))
        return AnalyticsDefinition(
            metrics=metrics,
            expression=expression if isinstance(expression, str) else "",
            expression_label=expression_label if isinstance(expression_label, str) else None,
            date_range=date_range if isinstance(date_range, (dict, DateRange)) else {},
            dimension="product" if data.get("dimension") == "product" else "date",
        )
    except ValidationError as e:
        raise validation_error("common.invalid_request", detail=f"definition: {e.error_count()} invalid field(s)")


async def _ads_spend_by_day(
    db: AsyncSession, user_id: str, start: date, end: date, campaign_type: Optional[str] = None
) -> Dict[date, Decimal]:
    query = select(AdDailyPerformance.ad_date, AdDailyPerformance.spend).where(
        AdDailyPerformance.created_by == user_id,
        AdDailyPerformance.ad_date >= start,
        AdDailyPerformance.ad_date <= end,
    )
    if campaign_type and campaign_type != "all":
        query = query.where(AdDailyPerformance.campaign_type == campaign_type)
    buckets = defaultdict(list)
    for ad_date, spend in (await db.execute(query)).all():
        buckets[ad_date].append(spend)
    return {day: sum_signed(values) for day, values in buckets.items()}


async def _cogs_by_day(db: AsyncSession, user_id: str, start: date, end: date) -> Dict[date, Decimal]:
    """Allocations net of return reversals, by Bangkok ship date."""
    start_utc, end_utc = range_bounds_utc(start, end)
    result = await db.execute(
        select(InventoryCogsAllocation.shipped_at, InventoryCogsAllocation.amount).where(
            InventoryCogsAllocation.created_by == user_id,
            InventoryCogsAllocation.shipped_at >= start_utc,
            InventoryCogsAllocation.shipped_at <= end_utc,
        )
    )
    buckets = defaultdict(list)
    for shipped_at, amount in result.all():
        buckets[to_bangkok_date(shipped_at)].append(amount)
    return {day: sum_signed(values) for day, values in buckets.items()}


async def _order_lines(db: AsyncSession, user_id: str, start: date, end: date):
    start_utc, end_utc = range_bounds_utc(start, end)
    result = await db.execute(
        select(SalesOrder.order_date, SalesOrder.order_id, SalesOrder.quantity).where(
            SalesOrder.created_by == user_id,
            SalesOrder.order_date >= start_utc,
            SalesOrder.order_date <= end_utc,
            SalesOrder.status != "cancelled",
        )
    )
    return result.all()


async def _orders_by_day(db: AsyncSession, user_id: str, start: date, end: date) -> Dict[date, Decimal]:
    orders = defaultdict(set)
    for order_date, order_id, _ in await _order_lines(db, user_id, start, end):
        orders[to_bangkok_date(order_date)].add(order_id)
    return {day: Decimal(len(ids)) for day, ids in orders.items()}


async def _units_by_day(db: AsyncSession, user_id: str, start: date, end: date) -> Dict[date, Decimal]:
    units = defaultdict(int)
    for order_date, _, quantity in await _order_lines(db, user_id, start, end):
        units[to_bangkok_date(order_date)] += quantity or 0
    return {day: Decimal(total) for day, total in units.items()}


async def _expense_subcategory_by_day(
    db: AsyncSession, user_id: str, start: date, end: date, category: str, subcategory: str
) -> Dict[date, Decimal]:
    result = await db.execute(
        select(Expense.expense_date, Expense.amount).where(
            Expense.created_by == user_id,
            Expense.expense_date >= start,
            Expense.expense_date <= end,
            Expense.category == category,
            Expense.subcategory == subcategory,
        )
    )
    buckets = defaultdict(list)
    for expense_date, amount in result.all():
        buckets[expense_date].append(amount)
    return {day: sum_signed(values) for day, values in buckets.items()}


async def fetch_metric(db: AsyncSession, user_id: str, ref: MetricRef, start: date, end: date) -> Dict[date, Decimal]:
    if ref.kind == "metric":
        if ref.key == "revenue":
            return await revenue_by_day(db, user_id, start, end)
        if ref.key == "advertising":
            return await _ads_spend_by_day(db, user_id, start, end)
        if ref.key == "cogs":
            return await _cogs_by_day(db, user_id, start, end)
        if ref.key == "operating":
            return await expenses_by_day(db, user_id, start, end, category="Operating")
        if ref.key == "orders":
            return await _orders_by_day(db, user_id, start, end)
        if ref.key == "units":
            return await _units_by_day(db, user_id, start, end)
    if ref.kind == "ads_spend":
        return await _ads_spend_by_day(db, user_id, start, end, ref.campaign_type)
    if ref.kind == "expense_subcategory":
        return await _expense_subcategory_by_day(db, user_id, start, end, ref.category, ref.subcategory)
    return {}


def _computed_label(definition: AnalyticsDefinition) -> Optional[str]:
    if definition.expression_label and definition.expression_label.strip():
        return definition.expression_label.strip()
    return "Computed" if definition.expression.strip() else None


async def run_analytics(db: AsyncSession, user_id: str, raw_definition: Any) -> dict:
    definition = migrate_definition(raw_definition)
    start, end = definition.date_range.start, definition.date_range.end
    if not start or not end or start > end:
        raise validation_error("common.invalid_date_range")
    if not definition.metrics:
        raise validation_error("analytics.no_metrics")

    slots = [metric_slot(ref) for ref in definition.metrics]
    expression = definition.expression.strip()
    if expression:
        error = validate_expression(expression, slots)
        if error:
            raise validation_error("analytics.invalid_expression", detail=error)

    series: Dict[str, Dict[date, Decimal]] = {}
    for ref, slot in zip(definition.metrics, slots):
        if is_metric_available(ref) and slot not in series:
            series[slot] = await fetch_metric(db, user_id, ref, start, end)

    rows = []
    for day in iter_dates(start, end):
        values = {slot: as_float(round2(series.get(slot, {}).get(day, ZERO))) for slot in slots}
        computed = None
        if expression:
            try:
                computed = evaluate_expression(expression, values)
            except ExpressionError:
                computed = None
        rows.append({"date": day.isoformat(), "values": values, "computed": computed})

    columns = [
        {"slot": slot, "label": metric_label(ref), "available": is_metric_available(ref)}
        for ref, slot in zip(definition.metrics, slots)
    ]
    logger.info(f"Analytics run for {user_id}: {len(slots)} metrics, {len(rows)} days")
    return {"rows": rows, "columns": columns, "computed_label": _computed_label(definition)}


async def export_analytics_csv(db: AsyncSession, user_id: str, raw_definition: Any) -> dict:
    definition = migrate_definition(raw_definition)
    result = await run_analytics(db, user_id, definition)
    computed_label = result["computed_label"]

    headers = ["Date"] + [column["label"] for column in result["columns"]]
    if computed_label:
        headers.append(computed_label)

    rows = []
    for row in result["rows"]:
        cells = [row["date"]] + [row["values"].get(column["slot"], 0) for column in result["columns"]]
        if computed_label:
            cells.append("" if row["computed"] is None else row["computed"])
        rows.append(cells)

    return {
        "filename": f"analytics-builder-{export_timestamp()}.csv",
        "csv": build_csv(headers, rows, bom=True),
    }


async def get_expense_subcategories(db: AsyncSession, user_id: str, category: Optional[str] = None) -> List[str]:
    query = select(Expense.subcategory).where(
        Expense.created_by == user_id, Expense.subcategory.isnot(None), Expense.subcategory != ""
    )
    if category:
        query = query.where(Expense.category == category)
    result = await db.execute(query.distinct().order_by(Expense.subcategory))
    return [row[0] for row in result.all()]


def build_preset_response(preset: AnalyticsPreset) -> dict:
    return {
        "id": preset.id,
        "name": preset.name,
        "definition": migrate_definition(preset.definition).model_dump(mode="json"),
        "created_at": format_bangkok(preset.created_at) if preset.created_at else None,
        "updated_at": format_bangkok(preset.updated_at) if preset.updated_at else None,
        "last_used_at": format_bangkok(preset.last_used_at) if preset.last_used_at else None,
    }


async def _get_owned_preset(db: AsyncSession, user_id: str, preset_id: str) -> AnalyticsPreset:
    preset = (
        await db.execute(
            select(AnalyticsPreset).where(AnalyticsPreset.id == preset_id, AnalyticsPreset.created_by == user_id)
        )
    ).scalar_one_or_none()
    if preset is None:
        raise not_found("analytics.preset_not_found")
    return preset


async def list_presets(db: AsyncSession, user_id: str) -> List[dict]:
    result = await db.execute(
        select(AnalyticsPreset)
        .where(AnalyticsPreset.created_by == user_id)
        .order_by(func.coalesce(AnalyticsPreset.updated_at, AnalyticsPreset.created_at).desc())
    )
    return [build_preset_response(p) for p in result.scalars().all()]


async def save_preset(db: AsyncSession, user_id: str, name: str, raw_definition: Any) -> dict:
    """Create a preset, or overwrite the definition of the one with the same name."""
    name = (name or "").strip()
    if not name:
        raise validation_error("analytics.preset_name_required")
    definition = migrate_definition(raw_definition).model_dump(mode="json")

    preset = (
        await db.execute(
            select(AnalyticsPreset).where(AnalyticsPreset.created_by == user_id, AnalyticsPreset.name == name)
        )
    ).scalar_one_or_none()
    if preset is None:
        preset = AnalyticsPreset(created_by=user_id, name=name)
        db.add(preset)
    preset.definition = definition
    preset.updated_at = utc_now()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate("analytics.preset_duplicate", name=name)
    await db.refresh(preset)
    logger.info(f"Analytics preset saved: {name} by {user_id}")
    return build_preset_response(preset)


async def delete_preset(db: AsyncSession, user_id: str, preset_id: str) -> dict:
    preset = await _get_owned_preset(db, user_id, preset_id)
    await db.delete(preset)
    await db.commit()
    return {"id": preset_id}


async def touch_preset(db: AsyncSession, user_id: str, preset_id: str) -> dict:
    preset = await _get_owned_preset(db, user_id, preset_id)
    preset.last_used_at = utc_now()
    await db.commit()
    return {"id": preset_id, "last_used_at": format_bangkok(preset.last_used_at)}
