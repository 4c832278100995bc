"""
Expenses: create, edit, delete, confirm paid, list and CSV export.

An expense starts as DRAFT. Once confirmed PAID its amount, category and date
are locked; only the description fields may still change.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import not_found, validation_error
from backoffice.lib.bangkok_time import export_timestamp, format_bangkok
from backoffice.lib.csv_export import build_csv
from backoffice.lib.money import as_float, round2, to_decimal
from backoffice.models.expense import EXPENSE_CATEGORIES, Expense
from backoffice.schemas.expense import ExpenseCreate, ExpenseFilters, ExpenseUpdate
from backoffice.services.audit import create_audit_log

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "รายจ่ายทั่วไป"

EXPORT_HEADERS = [
    "Date", "Status", "Category", "Subcategory", "Amount",
    "Vendor", "Description", "Notes", "Paid Date", "Created At",
]


def build_expense_response(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "expense_date": expense.expense_date.isoformat(),
        "category": expense.category,
        "subcategory": expense.subcategory,
        "amount": as_float(expense.amount),
        "description": expense.description,
        "vendor": expense.vendor,
        "notes": expense.notes,
        "expense_status": expense.expense_status,
        "planned_date": expense.planned_date.isoformat() if expense.planned_date else None,
        "paid_date": expense.paid_date.isoformat() if expense.paid_date else None,
        "source": expense.source,
        "created_at": format_bangkok(expense.created_at) if expense.created_at else None,
    }


def _audit_snapshot(expense: Expense) -> dict:
    return {
        "expense_date": expense.expense_date.isoformat() if expense.expense_date else None,
        "category": expense.category,
        "subcategory": expense.subcategory,
        "amount": as_float(expense.amount),
        "description": expense.description,
        "vendor": expense.vendor,
        "notes": expense.notes,
        "expense_status": expense.expense_status,
        "paid_date": expense.paid_date.isoformat() if expense.paid_date else None,
    }


def _validate(expense_in: ExpenseCreate) -> None:
    if expense_in.expense_date is None:
        raise validation_error("expenses.date_required")
    if expense_in.category not in EXPENSE_CATEGORIES:
        raise validation_error("expenses.invalid_category")
    if to_decimal(expense_in.amount) <= 0:
        raise validation_error("common.amount_positive")


def _clean(text: Optional[str]) -> Optional[str]:
    text = (text or "").strip()
    return text or None


async def _get_owned(db: AsyncSession, user_id: str, expense_id: str) -> Expense:
    expense = (
        await db.execute(select(Expense).where(Expense.id == expense_id, Expense.created_by == user_id))
    ).scalar_one_or_none()
    if expense is None:
        raise not_found("expenses.not_found")
    return expense


async def create_expense(db: AsyncSession, user_id: str, expense_in: ExpenseCreate) -> dict:
    _validate(expense_in)

    note = _clean(expense_in.note)
    expense = Expense(
        created_by=user_id,
        expense_date=expense_in.expense_date,
        category=expense_in.category,
        subcategory=_clean(expense_in.subcategory),
        amount=round2(expense_in.amount),
        description=note or DEFAULT_DESCRIPTION,
        vendor=_clean(expense_in.vendor),
        notes=note,
        expense_status="DRAFT",
        planned_date=expense_in.planned_date or expense_in.expense_date,
        source="manual",
    )
    db.add(expense)
    await db.flush()

    create_audit_log(
        db,
        user_id,
        action="CREATE",
        resource_type="expense",
        resource_id=expense.id,
        description=f"สร้างรายจ่าย {expense.category} {expense.amount}",
        new_value={"created": _audit_snapshot(expense)},
    )
    await db.commit()
    await db.refresh(expense)

    logger.info(f"Expense {expense.id} created by {user_id}: {expense.category} {expense.amount}")
    return build_expense_response(expense)


async def update_expense(db: AsyncSession, user_id: str, expense_id: str, expense_in: ExpenseUpdate) -> dict:
    expense = await _get_owned(db, user_id, expense_id)
    before = _audit_snapshot(expense)
    note = _clean(expense_in.note)

    if expense.is_paid:
        locked_changed = (
            (expense_in.expense_date is not None and expense_in.expense_date != expense.expense_date)
            or expense_in.category != expense.category
            or round2(expense_in.amount) != round2(expense.amount)
        )
        if locked_changed:
            raise validation_error("expenses.paid_locked")
        expense.description = note or DEFAULT_DESCRIPTION
        expense.notes = note
        expense.vendor = _clean(expense_in.vendor)
    else:
        _validate(expense_in)
        expense.expense_date = expense_in.expense_date
        expense.category = expense_in.category
        expense.subcategory = _clean(expense_in.subcategory)
        expense.amount = round2(expense_in.amount)
        expense.description = note or DEFAULT_DESCRIPTION
        expense.notes = note
        expense.vendor = _clean(expense_in.vendor)
        expense.planned_date = expense_in.planned_date or expense_in.expense_date

    create_audit_log(
        db,
        user_id,
        action="UPDATE",
        resource_type="expense",
        resource_id=expense.id,
        description="แก้ไขรายจ่าย",
        old_value={"before": before},
        new_value={"after": _audit_snapshot(expense)},
    )
    await db.commit()
    await db.refresh(expense)
    return build_expense_response(expense)


async def delete_expense(db: AsyncSession, user_id: str, expense_id: str) -> dict:
    expense = await _get_owned(db, user_id, expense_id)
    snapshot = _audit_snapshot(expense)

    create_audit_log(
        db,
        user_id,
        action="DELETE",
        resource_type="expense",
        resource_id=expense_id,
        description=f"ลบรายจ่าย {expense.category} {expense.amount}",
        old_value={"deleted": snapshot},
    )
    await db.delete(expense)
    await db.commit()

    logger.info(f"Expense {expense_id} deleted by {user_id}")
    return {"id": expense_id}


async def confirm_expense_paid(
    db: AsyncSession, user_id: str, expense_id: str, paid_date: Optional[date]
) -> dict:
    if paid_date is None:
        raise validation_error("expenses.paid_date_required")

    expense = await _get_owned(db, user_id, expense_id)
    if expense.is_paid:
        raise validation_error("expenses.already_paid")

    before = _audit_snapshot(expense)
    expense.expense_status = "PAID"
    expense.paid_date = paid_date

    create_audit_log(
        db,
        user_id,
        action="CONFIRM_PAID",
        resource_type="expense",
        resource_id=expense.id,
        description=f"ยืนยันจ่ายแล้ว วันที่ {paid_date.isoformat()}",
        old_value={"before": before},
        new_value={"after": _audit_snapshot(expense)},
    )
    await db.commit()
    await db.refresh(expense)
    return build_expense_response(expense)


def _filter_conditions(user_id: str, filters: ExpenseFilters):
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise validation_error("common.invalid_date_range")

    date_column = Expense.paid_date if filters.date_basis == "paid_date" else Expense.expense_date
    conditions = [Expense.created_by == user_id]
    if filters.date_basis == "paid_date":
        conditions.append(Expense.paid_date.isnot(None))
    if filters.category and filters.category != "All":
        conditions.append(Expense.category == filters.category)
    if filters.status and filters.status != "All":
        conditions.append(Expense.expense_status == filters.status)
    if filters.start_date:
        conditions.append(date_column >= filters.start_date)
    if filters.end_date:
        conditions.append(date_column <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        conditions.append(or_(Expense.description.ilike(pattern), Expense.notes.ilike(pattern)))
    return conditions, date_column


async def list_expenses(
    db: AsyncSession,
    user_id: str,
    filters: ExpenseFilters,
    page: int = 1,
    limit: int = 20,
) -> dict:
    conditions, date_column = _filter_conditions(user_id, filters)

    total = (await db.execute(select(func.count(Expense.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Expense)
        .where(*conditions)
        .order_by(date_column.desc(), Expense.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [build_expense_response(e) for e in result.scalars().all()],
        "total": total,
        "page": page,
        "limit": limit,
    }


async def export_expenses(db: AsyncSession, user_id: str, filters: ExpenseFilters) -> dict:
    conditions, date_column = _filter_conditions(user_id, filters)

    expenses = []
    offset = 0
    while True:
        result = await db.execute(
            select(Expense)
            .where(*conditions)
            .order_by(date_column.desc(), Expense.id)
            .offset(offset)
            .limit(settings.PAGE_SIZE)
        )
        page = result.scalars().all()
        expenses.extend(page)
        if len(page) < settings.PAGE_SIZE:
            break
        offset += settings.PAGE_SIZE

    if not expenses:
        raise validation_error("common.no_export_data")

    rows = [
        [
            e.expense_date.isoformat(),
            e.expense_status,
            e.category,
            e.subcategory or "",
            f"{round2(e.amount):.2f}",
            e.vendor or "",
            e.description,
            e.notes or "",
            e.paid_date.isoformat() if e.paid_date else "",
            format_bangkok(e.created_at) if e.created_at else "",
        ]
        for e in expenses
    ]
    suffix = "-cash-basis" if filters.date_basis == "paid_date" else ""
    return {
        "filename": f"expenses{suffix}-{export_timestamp()}.csv",
        "csv": build_csv(EXPORT_HEADERS, rows),
    }
