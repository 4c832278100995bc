from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class MetricRef(BaseModel):
    """
    A metric placed on the builder canvas.

    kind selects which of the other fields apply:
    metric (key), ads_spend (campaign_type), expense_subcategory (category,
    subcategory), funnel (metric, stage), fees / vat (key).
    """
    kind: str = Field(..., pattern="^(metric|ads_spend|expense_subcategory|funnel|fees|vat)$")
    key: Optional[str] = None
    campaign_type: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    metric: Optional[str] = None
    stage: Optional[str] = None


class DateRange(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None


class AnalyticsDefinition(BaseModel):
    # plain strings are the older simple-metric format
    metrics: List[Union[MetricRef, str]] = []
    expression: str = ""
    expression_label: Optional[str] = None
    date_range: DateRange = DateRange()
    dimension: str = "date"


class PresetSave(BaseModel):
    name: str
    definition: AnalyticsDefinition
