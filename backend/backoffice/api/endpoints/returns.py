"""Returns API"""

from datetime import date
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db, get_locale, require_admin
from backoffice.schemas.common import AnyResponse
from backoffice.schemas.returns import ReturnSubmit, ReturnsQueueFilters, UndoReturn
from backoffice.services import returns as returns_service

router = APIRouter()


@router.get("/search", response_model=AnyResponse)
async def search_orders(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    q: str = Query("", description="external order id or tracking number"),
) -> Any:
    return ok(await returns_service.search_orders_for_return(db, user_id, q))


@router.post("/", response_model=AnyResponse)
async def submit_return(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    locale: str = Depends(get_locale),
    data: ReturnSubmit,
) -> Any:
    """Record returns; received goods go back into stock with their COGS reversed"""
    result = await returns_service.submit_return(db, user_id, data)
    return ok(result, locale=locale)


@router.get("/queue", response_model=AnyResponse)
async def returns_queue(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_groups: Optional[List[str]] = Query(None),
) -> Any:
    filters = ReturnsQueueFilters(start_date=start_date, end_date=end_date, status_groups=status_groups)
    return ok(await returns_service.get_returns_queue(db, user_id, filters))


@router.get("/recent", response_model=AnyResponse)
async def recent_returns(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(await returns_service.get_recent_returns(db, user_id, limit))


@router.post("/{return_id}/undo", response_model=AnyResponse)
async def undo_return(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    return_id: str,
    data: UndoReturn,
) -> Any:
    return ok(await returns_service.undo_return(db, user_id, return_id, data.note))


@router.post("/backfill-stock", response_model=AnyResponse)
async def backfill_return_stock(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(require_admin),
) -> Any:
    """Admin: create missing stock layers for received returns"""
    return ok(await returns_service.backfill_missing_return_stock(db, user_id))
