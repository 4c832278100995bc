"""Import batch history API"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import ActionResponse, AnyResponse, PageResponse
from backoffice.schemas.import_batch import CleanupResult, ImportBatchResponse
from backoffice.services import import_batches as batch_service
from backoffice.services.scheduler import get_scheduler_status

router = APIRouter()


@router.get("/", response_model=ActionResponse[PageResponse[ImportBatchResponse]])
async def list_batches(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    report_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(
        await batch_service.list_import_batches(
            db, user_id, report_type=report_type, status=status, page=page, limit=limit
        )
    )


@router.post("/cleanup", response_model=ActionResponse[CleanupResult])
async def cleanup_stale(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    """Fail this user's batches stuck in processing"""
    count = await batch_service.cleanup_stale_import_batches(db, user_id)
    return ok({"cleaned": count})


@router.post("/{batch_id}/rollback", response_model=AnyResponse)
async def rollback_batch(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    batch_id: str,
) -> Any:
    return ok(await batch_service.rollback_import_batch(db, user_id, batch_id))


@router.get("/scheduler", response_model=AnyResponse)
async def scheduler_status(*, user_id: str = Depends(get_current_user_id)) -> Any:
    return ok(get_scheduler_status())
