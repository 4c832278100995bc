from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel


class BankAccountCreate(BaseModel):
    bank_name: str
    account_number: str
    account_type: str = "savings"
    currency: str = "THB"


class BankTransactionFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None


class OpeningBalanceUpsert(BaseModel):
    as_of_date: date
    opening_balance: float


class ReportedBalanceCreate(BaseModel):
    reported_as_of_date: date
    reported_balance: float
    note: Optional[str] = None


class ColumnMapping(BaseModel):
    """Statement column names chosen by the user for each field."""
    txn_date: Optional[str] = None
    description: Optional[str] = None
    withdrawal: Optional[str] = None
    deposit: Optional[str] = None
    balance: Optional[str] = None
    channel: Optional[str] = None
    reference_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return self.model_dump()
