from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class SettlementRow(BaseModel):
    txn_id: str
    order_id: Optional[str] = None
    type: Optional[str] = None
    settled_time: Optional[datetime] = None
    settlement_amount: float = 0
    gross_revenue: float = 0
    fees_total: float = 0


class SettlementImport(BaseModel):
    marketplace: str
    file_name: Optional[str] = None
    rows: List[SettlementRow]
    reconcile: bool = True


class UnsettledRow(BaseModel):
    txn_id: str
    related_order_id: Optional[str] = None
    estimated_settle_time: Optional[datetime] = None
    estimated_settlement_amount: float = 0


class UnsettledImport(BaseModel):
    marketplace: str
    file_name: Optional[str] = None
    rows: List[UnsettledRow]


class ReconcileResult(BaseModel):
    settled_count: int = 0
    already_settled_count: int = 0
    not_found_count: int = 0
    errors: List[str] = []


class ReconcileStatus(BaseModel):
    import_batch_id: str
    settlement_count: int
    matched_count: int
    unsettled_count: int
    not_found_count: int
