"""Wallet and wallet ledger schemas"""

from datetime import date as date_type
from typing import Optional
from pydantic import BaseModel, Field


class WalletCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    wallet_type: str
    currency: str = "THB"
    description: Optional[str] = None


class LedgerEntryCreate(BaseModel):
    """Manual ledger entry; imported entries are written by the import services"""
    wallet_id: Optional[str] = None
    date: Optional[date_type] = None
    entry_type: str
    direction: str
    amount: float
    reference_id: Optional[str] = None
    note: Optional[str] = None


class LedgerEntryUpdate(BaseModel):
    date: Optional[date_type] = None
    entry_type: str
    direction: str
    amount: float
    reference_id: Optional[str] = None
    note: Optional[str] = None


class LedgerFilters(BaseModel):
    wallet_id: str
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    entry_type: Optional[str] = None
    source: Optional[str] = None
