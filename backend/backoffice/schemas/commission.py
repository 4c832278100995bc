"""CEO commission schemas"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel


class CommissionCreate(BaseModel):
    commission_date: Optional[date] = None
    platform: Optional[str] = None
    gross_amount: float
    personal_used_amount: float = 0
    transferred_to_company_amount: float = 0
    note: Optional[str] = None
    reference: Optional[str] = None


class CommissionFromBankCreate(CommissionCreate):
    """Declare a bank deposit as commission"""
    bank_transaction_id: str


class CommissionFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    platform: Optional[str] = None
    search: Optional[str] = None


class CandidateFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    bank_account_id: Optional[str] = None


class CommissionSourcesUpdate(BaseModel):
    bank_account_ids: List[str] = []
