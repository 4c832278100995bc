"""Analytics builder API"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.analytics import PresetSave
from backoffice.schemas.common import AnyResponse
from backoffice.services import analytics_builder as analytics_service

router = APIRouter()


@router.post("/run", response_model=AnyResponse)
async def run_analytics(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    definition: dict = Body(...),
) -> Any:
    """Evaluate a saved-or-draft definition; older definition shapes are accepted"""
    return ok(await analytics_service.run_analytics(db, user_id, definition))


@router.post("/export", response_model=AnyResponse)
async def export_analytics(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    definition: dict = Body(...),
) -> Any:
    return ok(await analytics_service.export_analytics_csv(db, user_id, definition))


@router.get("/expense-subcategories", response_model=AnyResponse)
async def expense_subcategories(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    category: Optional[str] = Query(None),
) -> Any:
    return ok(await analytics_service.get_expense_subcategories(db, user_id, category))


@router.get("/presets", response_model=AnyResponse)
async def list_presets(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await analytics_service.list_presets(db, user_id))


@router.post("/presets", response_model=AnyResponse)
async def save_preset(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: PresetSave,
) -> Any:
    return ok(await analytics_service.save_preset(db, user_id, data.name, data.definition))


@router.delete("/presets/{preset_id}", response_model=AnyResponse)
async def delete_preset(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    preset_id: str,
) -> Any:
    return ok(await analytics_service.delete_preset(db, user_id, preset_id))


@router.post("/presets/{preset_id}/touch", response_model=AnyResponse)
async def touch_preset(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    preset_id: str,
) -> Any:
    return ok(await analytics_service.touch_preset(db, user_id, preset_id))
