"""
Daily profit & loss.

Revenue is the sum of non-cancelled order lines whose order_date falls in the
Bangkok day; expense buckets come from the expenses table by category. Every
bucket clamps negative rows to zero and is rounded once after summing.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import validation_error
from backoffice.lib.bangkok_time import bangkok_today, iter_dates, range_bounds_utc, to_bangkok_date
from backoffice.lib.money import as_float, round2, sum_amounts
from backoffice.models.expense import Expense
from backoffice.models.sales_order import SalesOrder

logger = logging.getLogger(__name__)

PL_CATEGORIES = {
    "Advertising": "advertising_cost",
    "COGS": "cogs",
    "Operating": "operating_expenses",
}


async def revenue_by_day(db: AsyncSession, user_id: str, start: date, end: date) -> Dict[date, Decimal]:
    """Non-cancelled order revenue bucketed by Bangkok order date."""
    start_utc, end_utc = range_bounds_utc(start, end)
    result = await db.execute(
        select(SalesOrder.order_date, SalesOrder.total_amount).where(
            SalesOrder.created_by == user_id,
            SalesOrder.order_date >= start_utc,
            SalesOrder.order_date <= end_utc,
            SalesOrder.status != "cancelled",
        )
    )
    buckets = defaultdict(list)
    for order_date, amount in result.all():
        buckets[to_bangkok_date(order_date)].append(amount)
    return {day: sum_amounts(values) for day, values in buckets.items()}


async def expenses_by_day(
    db: AsyncSession,
    user_id: str,
    start: date,
    end: date,
    category: Optional[str] = None,
) -> Dict[date, Decimal]:
    query = select(Expense.expense_date, Expense.amount).where(
        Expense.created_by == user_id,
        Expense.expense_date >= start,
        Expense.expense_date <= end,
    )
    if category:
        query = query.where(Expense.category == category)
    result = await db.execute(query)
    buckets = defaultdict(list)
    for expense_date, amount in result.all():
        buckets[expense_date].append(amount)
    return {day: sum_amounts(values) for day, values in buckets.items()}


def _build_day(day: date, revenue: Decimal, costs: Dict[str, Decimal]) -> dict:
    net_profit = round2(revenue - sum(costs.values(), Decimal("0")))
    row = {"date": day.isoformat(), "revenue": as_float(revenue)}
    for key in PL_CATEGORIES.values():
        row[key] = as_float(costs.get(key))
    row["net_profit"] = as_float(net_profit)
    return row


async def get_daily_pl_range(db: AsyncSession, user_id: str, start: date, end: date) -> List[dict]:
    if start > end:
        raise validation_error("common.invalid_date_range")

    revenue = await revenue_by_day(db, user_id, start, end)
    by_category = {
        key: await expenses_by_day(db, user_id, start, end, category)
        for category, key in PL_CATEGORIES.items()
    }

    rows = []
    for day in iter_dates(start, end):
        costs = {key: buckets.get(day, Decimal("0")) for key, buckets in by_category.items()}
        rows.append(_build_day(day, revenue.get(day, Decimal("0")), costs))
    return rows


async def get_daily_pl(db: AsyncSession, user_id: str, day: Optional[date] = None) -> dict:
    day = day or bangkok_today()
    rows = await get_daily_pl_range(db, user_id, day, day)
    return rows[0]
