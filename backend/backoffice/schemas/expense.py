"""Expense schemas"""

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class ExpenseCreate(BaseModel):
    """Create an expense (starts as DRAFT)"""
    expense_date: Optional[date] = None
    category: str
    subcategory: Optional[str] = None
    amount: float
    note: Optional[str] = None
    vendor: Optional[str] = None
    planned_date: Optional[date] = None


class ExpenseUpdate(ExpenseCreate):
    """Update an expense; a PAID expense only accepts note/vendor changes"""
    pass


class ExpenseConfirmPaid(BaseModel):
    paid_date: Optional[date] = None


class ExpenseFilters(BaseModel):
    category: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(All|DRAFT|PAID)$")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
    # expense_date (accrual) or paid_date (cash basis)
    date_basis: str = Field("expense_date", pattern="^(expense_date|paid_date)$")
