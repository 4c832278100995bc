"""Inventory, FIFO costing and SKU mapping API"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import AnyResponse
from backoffice.schemas.inventory import CogsAllocate, InventoryItemUpsert, SkuMappingUpsert, StockIn
from backoffice.services import inventory as inventory_service

router = APIRouter()


@router.get("/items", response_model=AnyResponse)
async def list_items(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await inventory_service.list_items(db, user_id))


@router.post("/items", response_model=AnyResponse)
async def upsert_item(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    item_in: InventoryItemUpsert,
) -> Any:
    return ok(await inventory_service.upsert_item(db, user_id, item_in))


@router.get("/items/{sku_internal}/on-hand", response_model=AnyResponse)
async def on_hand(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    sku_internal: str,
) -> Any:
    qty = await inventory_service.get_on_hand(db, user_id, sku_internal)
    return ok({"sku_internal": sku_internal, "on_hand": float(qty)})


@router.post("/stock-in", response_model=AnyResponse)
async def stock_in(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: StockIn,
) -> Any:
    """Receive stock as a new FIFO layer"""
    return ok(await inventory_service.stock_in(db, user_id, data))


@router.post("/allocate", response_model=AnyResponse)
async def allocate_cogs(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: CogsAllocate,
) -> Any:
    return ok(await inventory_service.allocate_cogs_fifo(db, user_id, data))


@router.get("/sku-mappings", response_model=AnyResponse)
async def list_sku_mappings(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    channel: Optional[str] = Query(None),
) -> Any:
    return ok(await inventory_service.list_sku_mappings(db, user_id, channel))


@router.post("/sku-mappings", response_model=AnyResponse)
async def upsert_sku_mapping(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    mapping_in: SkuMappingUpsert,
) -> Any:
    return ok(await inventory_service.upsert_sku_mapping(db, user_id, mapping_in))


@router.delete("/sku-mappings/{mapping_id}", response_model=AnyResponse)
async def delete_sku_mapping(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    mapping_id: str,
) -> Any:
    return ok(await inventory_service.delete_sku_mapping(db, user_id, mapping_id))
