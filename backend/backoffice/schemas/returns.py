"""Return schemas"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field


class ReturnItem(BaseModel):
    line_item_id: str
    sku: str = ""
    qty: int
    return_type: str = Field(..., pattern="^(RETURN_RECEIVED|REFUND_ONLY|CANCEL_BEFORE_SHIP)$")


class ReturnSubmit(BaseModel):
    items: List[ReturnItem] = []
    note: Optional[str] = None


class UndoReturn(BaseModel):
    note: Optional[str] = None


class ReturnsQueueFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status_groups: Optional[List[str]] = None
