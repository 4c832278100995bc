"""Ads performance API"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.ads import AdsSummary
from backoffice.schemas.common import ActionResponse, AnyResponse
from backoffice.services.ads import get_ads_performance, get_ads_summary, import_ads_report, preview_ads_import

router = APIRouter()


@router.get("/summary", response_model=ActionResponse[AdsSummary])
async def ads_summary(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Any:
    return ok(await get_ads_summary(db, user_id, start_date, end_date))


@router.get("/performance", response_model=AnyResponse)
async def ads_performance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Any:
    return ok(await get_ads_performance(db, user_id, start_date, end_date))


@router.post("/import/preview", response_model=AnyResponse)
async def ads_import_preview(
    *,
    user_id: str = Depends(get_current_user_id),
    file: UploadFile = File(...),
) -> Any:
    """Parse an ads report without saving anything"""
    content = await file.read()
    return ok(preview_ads_import(content, file.filename or "ads.xlsx"))


@router.post("/import", response_model=AnyResponse)
async def ads_import(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    file: UploadFile = File(...),
    marketplace: str = Form("tiktok"),
    campaign_type: str = Form("product"),
    wallet_id: Optional[str] = Form(None),
) -> Any:
    content = await file.read()
    result = await import_ads_report(
        db,
        user_id,
        content,
        file.filename or "ads.xlsx",
        marketplace=marketplace,
        campaign_type=campaign_type,
        wallet_id=wallet_id or None,
    )
    return ok(result)
