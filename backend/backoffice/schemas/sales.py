"""Sales order schemas"""

from typing import List, Optional

from pydantic import BaseModel


class SalesRowError(BaseModel):
    row: int
    field: Optional[str] = None
    message: str


class SalesLinePreview(BaseModel):
    row_number: int
    order_id: str
    product_name: str
    sku: Optional[str] = None
    seller_sku: Optional[str] = None
    quantity: int
    unit_price: float
    total_amount: float
    order_date: str
    status: str
    status_group: str
    platform_status: Optional[str] = None
    tracking_number: Optional[str] = None


class SalesImportPreview(BaseModel):
    file_name: str
    import_type: str
    line_count: int
    total_orders: int
    unique_order_ids: int
    total_revenue: float
    date_min: Optional[str] = None
    date_max: Optional[str] = None
    skipped_rows: int = 0
    errors: List[SalesRowError] = []
    sample_rows: List[SalesLinePreview] = []


class SalesImportResult(BaseModel):
    batch_id: str
    import_type: str
    inserted: int
    updated: int
    skipped: int
    error_count: int
    errors: List[SalesRowError] = []
    line_count: int
    total_orders: int
    total_revenue: float
    date_min: Optional[str] = None
    date_max: Optional[str] = None
    replaced_batch_id: Optional[str] = None
    deleted: Optional[int] = None


class SalesOrderResponse(BaseModel):
    id: str
    order_id: str
    source_platform: Optional[str] = None
    product_name: Optional[str] = None
    sku: Optional[str] = None
    seller_sku: Optional[str] = None
    quantity: int
    unit_price: float
    total_amount: float
    status: str
    status_group: Optional[str] = None
    platform_status: Optional[str] = None
    order_date: str
    shipped_at: Optional[str] = None
    tracking_number: Optional[str] = None
    import_batch_id: Optional[str] = None
