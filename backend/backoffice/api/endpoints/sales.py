"""Sales orders API"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import ActionResponse, PageResponse
from backoffice.schemas.sales import SalesImportPreview, SalesImportResult, SalesOrderResponse
from backoffice.services import sales as sales_service

router = APIRouter()


@router.get("/", response_model=ActionResponse[PageResponse[SalesOrderResponse]])
async def list_sales(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> Any:
    return ok(
        await sales_service.list_sales_orders(
            db, user_id, start_date=start_date, end_date=end_date, status=status, page=page, limit=limit
        )
    )


@router.post("/import/preview", response_model=ActionResponse[SalesImportPreview])
async def sales_import_preview(
    *,
    user_id: str = Depends(get_current_user_id),
    file: UploadFile = File(...),
    source_platform: str = Form("tiktok_shop"),
) -> Any:
    """Parse an order export without saving anything"""
    content = await file.read()
    return ok(sales_service.preview_sales_import(content, file.filename or "orders.xlsx", source_platform))


@router.post("/import", response_model=ActionResponse[SalesImportResult])
async def sales_import(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    file: UploadFile = File(...),
    source_platform: str = Form("tiktok_shop"),
) -> Any:
    content = await file.read()
    result = await sales_service.import_sales_file(
        db, user_id, content, file.filename or "orders.xlsx", source_platform=source_platform
    )
    return ok(result)


@router.post("/import/{batch_id}/replace", response_model=ActionResponse[SalesImportResult])
async def sales_import_replace(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    batch_id: str,
    file: UploadFile = File(...),
    source_platform: str = Form("tiktok_shop"),
) -> Any:
    """Re-import a file that was already imported, dropping the old batch's lines"""
    content = await file.read()
    result = await sales_service.replace_sales_import(
        db, user_id, batch_id, content, file.filename or "orders.xlsx", source_platform=source_platform
    )
    return ok(result)
