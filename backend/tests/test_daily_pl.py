from datetime import date, datetime

import pytest

from backoffice.core.errors import ActionError
from backoffice.models import Expense
from backoffice.services import daily_pl as daily_pl_service
from backoffice.services.dashboard import get_dashboard_stats

from conftest import MARCH_1, OTHER_USER, USER, add_order_line

MARCH_2 = date(2026, 3, 2)


async def _seed(db):
    # 12:00 Bangkok on Mar 1
    await add_order_line(db, order_id="ORD-1", total_amount=300)
    # 00:30 Bangkok on Mar 1, still Feb 28 in UTC
    await add_order_line(db, order_id="ORD-2", total_amount=50, order_date=datetime(2026, 2, 28, 17, 30))
    # 01:00 Bangkok on Mar 2
    await add_order_line(db, order_id="ORD-3", total_amount=200, order_date=datetime(2026, 3, 1, 18, 0))
    await add_order_line(db, order_id="ORD-4", total_amount=100, status="cancelled")
    await add_order_line(db, order_id="ORD-5", total_amount=700, user_id=OTHER_USER)

    for category, amount in (("Advertising", 40), ("COGS", 100), ("Operating", 60), ("Tax", 999)):
        db.add(Expense(created_by=USER, expense_date=MARCH_1, category=category, amount=amount))
    await db.commit()


async def test_daily_pl_buckets_by_bangkok_day(db):
    await _seed(db)
    rows = await daily_pl_service.get_daily_pl_range(db, USER, MARCH_1, MARCH_2)

    assert rows[0] == {
        "date": "2026-03-01",
        "revenue": 350.0,
        "advertising_cost": 40.0,
        "cogs": 100.0,
        "operating_expenses": 60.0,
        "net_profit": 150.0,
    }
    assert rows[1]["revenue"] == 200.0
    assert rows[1]["net_profit"] == 200.0


async def test_single_day_and_empty_day(db):
    await _seed(db)
    empty = await daily_pl_service.get_daily_pl(db, USER, date(2026, 3, 5))
    assert empty["revenue"] == 0.0
    assert empty["net_profit"] == 0.0


async def test_invalid_range(db):
    with pytest.raises(ActionError) as exc_info:
        await daily_pl_service.get_daily_pl_range(db, USER, MARCH_2, MARCH_1)
    assert exc_info.value.code == "common.invalid_date_range"


async def test_dashboard_today_and_trend(db):
    await _seed(db)
    stats = await get_dashboard_stats(db, USER, today=MARCH_2)

    assert stats["today"] == "2026-03-02"
    assert stats["total_sales_today"] == 200.0
    assert stats["total_expenses_today"] == 0.0
    assert stats["net_profit_today"] == 200.0

    trend = stats["trend"]
    assert len(trend) == 7
    assert trend[0]["date"] == "2026-02-24"
    assert trend[-1] == {"date": "2026-03-02", "label": "จ.", "sales": 200.0, "expenses": 0.0}
    # every expense category counts towards the trend
    assert trend[-2]["expenses"] == 1199.0
    assert trend[-2]["sales"] == 350.0
