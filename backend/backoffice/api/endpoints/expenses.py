"""Expenses API"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import AnyResponse
from backoffice.schemas.expense import ExpenseConfirmPaid, ExpenseCreate, ExpenseFilters, ExpenseUpdate
from backoffice.services import expenses as expense_service

router = APIRouter()


@router.get("/", response_model=AnyResponse)
async def list_expenses(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: ExpenseFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(await expense_service.list_expenses(db, user_id, filters, page, limit))


@router.post("/", response_model=AnyResponse)
async def create_expense(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    expense_in: ExpenseCreate,
) -> Any:
    """Create a DRAFT expense"""
    return ok(await expense_service.create_expense(db, user_id, expense_in))


@router.get("/export", response_model=AnyResponse)
async def export_expenses(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: ExpenseFilters = Depends(),
) -> Any:
    return ok(await expense_service.export_expenses(db, user_id, filters))


@router.put("/{expense_id}", response_model=AnyResponse)
async def update_expense(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    expense_id: str,
    expense_in: ExpenseUpdate,
) -> Any:
    return ok(await expense_service.update_expense(db, user_id, expense_id, expense_in))


@router.delete("/{expense_id}", response_model=AnyResponse)
async def delete_expense(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    expense_id: str,
) -> Any:
    return ok(await expense_service.delete_expense(db, user_id, expense_id))


@router.post("/{expense_id}/confirm-paid", response_model=AnyResponse)
async def confirm_expense_paid(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    expense_id: str,
    data: ExpenseConfirmPaid,
) -> Any:
    """DRAFT -> PAID"""
    return ok(await expense_service.confirm_expense_paid(db, user_id, expense_id, data.paid_date))
