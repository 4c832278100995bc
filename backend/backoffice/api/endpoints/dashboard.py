"""Dashboard API"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import AnyResponse
from backoffice.services.dashboard import get_dashboard_stats

router = APIRouter()


@router.get("/", response_model=AnyResponse)
async def dashboard_stats(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    today: Optional[date] = Query(None, description="Bangkok date, defaults to today"),
) -> Any:
    """Today's sales, expenses and net profit plus the 7-day trend"""
    return ok(await get_dashboard_stats(db, user_id, today))
