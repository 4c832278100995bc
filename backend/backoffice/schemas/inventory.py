"""Inventory schemas"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class InventoryItemUpsert(BaseModel):
    sku_internal: str = Field(..., min_length=1, max_length=100)
    product_name: str = Field(..., min_length=1, max_length=255)
    base_cost_per_unit: float = Field(0, ge=0)
    is_bundle: bool = False


class StockIn(BaseModel):
    sku_internal: str
    qty: float
    unit_cost: float = Field(..., ge=0)
    # Bangkok business date; the layer is stamped at Bangkok midnight
    received_date: date
    ref_type: str = Field("PURCHASE", pattern="^(OPENING_BALANCE|PURCHASE|ADJUSTMENT)$")
    ref_id: Optional[str] = None


class CogsAllocate(BaseModel):
    order_id: str
    sku_internal: str
    qty: float
    shipped_at: datetime


class SkuMappingUpsert(BaseModel):
    channel: Optional[str] = None
    marketplace_sku: Optional[str] = None
    sku_internal: Optional[str] = None
