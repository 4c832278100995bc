"""Daily P&L API"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import AnyResponse
from backoffice.services.daily_pl import get_daily_pl, get_daily_pl_range

router = APIRouter()


@router.get("/", response_model=AnyResponse)
async def daily_pl(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    day: Optional[date] = Query(None, alias="date"),
) -> Any:
    return ok(await get_daily_pl(db, user_id, day))


@router.get("/range", response_model=AnyResponse)
async def daily_pl_range(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Any:
    """One P&L row per day, oldest first"""
    return ok(await get_daily_pl_range(db, user_id, start_date, end_date))
