"""Settlement import and reconciliation API"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import ActionResponse, AnyResponse
from backoffice.schemas.settlement import ReconcileResult, ReconcileStatus, SettlementImport, UnsettledImport
from backoffice.services import settlement as settlement_service

router = APIRouter()


@router.post("/settlements", response_model=AnyResponse)
async def import_settlements(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: SettlementImport,
) -> Any:
    return ok(await settlement_service.import_settlements(db, user_id, data))


@router.post("/unsettled", response_model=AnyResponse)
async def import_unsettled(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: UnsettledImport,
) -> Any:
    return ok(await settlement_service.import_unsettled(db, user_id, data))


@router.get("/unsettled", response_model=AnyResponse)
async def list_unsettled(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    status: Optional[str] = Query("unsettled"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(await settlement_service.list_unsettled(db, user_id, status, page, limit))


@router.post("/{batch_id}", response_model=ActionResponse[ReconcileResult])
async def reconcile_batch(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    batch_id: str,
) -> Any:
    """Mark forecast rows settled for every settlement in the batch"""
    result = await settlement_service.reconcile_settlements(db, user_id, batch_id)
    return ok(result.model_dump())


@router.get("/{batch_id}/status", response_model=ActionResponse[ReconcileStatus])
async def reconcile_status(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    batch_id: str,
) -> Any:
    return ok(await settlement_service.get_reconcile_status(db, user_id, batch_id))
