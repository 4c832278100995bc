"""Ads schemas"""

from pydantic import BaseModel


class AdsSummary(BaseModel):
    total_spend: float
    total_revenue: float
    total_orders: int
    blended_roi: float
