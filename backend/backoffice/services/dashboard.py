"""Today's headline numbers and the 7-day sales/expenses trend."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.lib.bangkok_time import bangkok_today, last_n_days, thai_weekday_short
from backoffice.lib.money import as_float, round2
from backoffice.services.daily_pl import expenses_by_day, revenue_by_day

logger = logging.getLogger(__name__)

TREND_DAYS = 7


async def get_dashboard_stats(db: AsyncSession, user_id: str, today: Optional[date] = None) -> dict:
    today = today or bangkok_today()
    days = last_n_days(TREND_DAYS, today)

    sales = await revenue_by_day(db, user_id, days[0], days[-1])
    expenses = await expenses_by_day(db, user_id, days[0], days[-1])

    total_sales = sales.get(today, Decimal("0"))
    total_expenses = expenses.get(today, Decimal("0"))

    trend = [
        {
            "date": day.isoformat(),
            "label": thai_weekday_short(day),
            "sales": as_float(sales.get(day)),
            "expenses": as_float(expenses.get(day)),
        }
        for day in days
    ]

    return {
        "today": today.isoformat(),
        "total_sales_today": as_float(total_sales),
        "total_expenses_today": as_float(total_expenses),
        "net_profit_today": as_float(round2(total_sales - total_expenses)),
        "trend": trend,
    }
