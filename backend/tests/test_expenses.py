from datetime import date

import pytest
from sqlalchemy import select

from backoffice.core.errors import ActionError, ErrorKind
from backoffice.models import AuditLog
from backoffice.schemas.expense import ExpenseCreate, ExpenseFilters, ExpenseUpdate
from backoffice.services import expenses as expense_service

from conftest import MARCH_1, OTHER_USER, USER


def _expense(**overrides):
    data = {"expense_date": MARCH_1, "category": "Operating", "amount": 1200.005, "note": "Office rent"}
    data.update(overrides)
    return ExpenseCreate(**data)


async def test_create_expense_rounds_and_audits(db):
    created = await expense_service.create_expense(db, USER, _expense())

    assert created["amount"] == 1200.01
    assert created["expense_status"] == "DRAFT"
    assert created["description"] == "Office rent"
    assert created["planned_date"] == "2026-03-01"

    logs = (await db.execute(select(AuditLog).where(AuditLog.resource_id == created["id"]))).scalars().all()
    assert [log.action for log in logs] == ["CREATE"]


async def test_blank_note_uses_default_description(db):
    created = await expense_service.create_expense(db, USER, _expense(note="   "))
    assert created["description"] == expense_service.DEFAULT_DESCRIPTION
    assert created["notes"] is None


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"category": "Travel"}, "expenses.invalid_category"),
        ({"amount": 0}, "common.amount_positive"),
        ({"expense_date": None}, "expenses.date_required"),
    ],
)
async def test_create_expense_validation(db, overrides, code):
    with pytest.raises(ActionError) as exc_info:
        await expense_service.create_expense(db, USER, _expense(**overrides))
    assert exc_info.value.kind == ErrorKind.VALIDATION
    assert exc_info.value.code == code


async def test_paid_expense_locks_amount_but_allows_note(db):
    created = await expense_service.create_expense(db, USER, _expense(amount=500))
    paid = await expense_service.confirm_expense_paid(db, USER, created["id"], date(2026, 3, 5))
    assert paid["expense_status"] == "PAID"
    assert paid["paid_date"] == "2026-03-05"

    with pytest.raises(ActionError) as exc_info:
        await expense_service.update_expense(db, USER, created["id"], ExpenseUpdate(**_expense(amount=600).model_dump()))
    assert exc_info.value.code == "expenses.paid_locked"

    updated = await expense_service.update_expense(
        db, USER, created["id"], ExpenseUpdate(**_expense(amount=500, note="Rent (March)").model_dump())
    )
    assert updated["description"] == "Rent (March)"
    assert updated["amount"] == 500.0

    with pytest.raises(ActionError) as exc_info:
        await expense_service.confirm_expense_paid(db, USER, created["id"], date(2026, 3, 6))
    assert exc_info.value.code == "expenses.already_paid"


async def test_confirm_paid_requires_date(db):
    created = await expense_service.create_expense(db, USER, _expense())
    with pytest.raises(ActionError) as exc_info:
        await expense_service.confirm_expense_paid(db, USER, created["id"], None)
    assert exc_info.value.code == "expenses.paid_date_required"


async def test_other_users_expense_is_not_found(db):
    created = await expense_service.create_expense(db, USER, _expense())
    with pytest.raises(ActionError) as exc_info:
        await expense_service.delete_expense(db, OTHER_USER, created["id"])
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


async def test_delete_keeps_audit_trail(db):
    created = await expense_service.create_expense(db, USER, _expense())
    await expense_service.delete_expense(db, USER, created["id"])

    listing = await expense_service.list_expenses(db, USER, ExpenseFilters())
    assert listing["total"] == 0
    actions = (
        await db.execute(select(AuditLog.action).where(AuditLog.resource_id == created["id"]))
    ).scalars().all()
    assert sorted(actions) == ["CREATE", "DELETE"]


async def test_list_filters_and_cash_basis(db):
    first = await expense_service.create_expense(db, USER, _expense(amount=100))
    await expense_service.create_expense(db, USER, _expense(amount=200, category="Advertising", note="Boost"))
    await expense_service.create_expense(db, OTHER_USER, _expense(amount=300))
    await expense_service.confirm_expense_paid(db, USER, first["id"], date(2026, 3, 10))

    everything = await expense_service.list_expenses(db, USER, ExpenseFilters())
    assert everything["total"] == 2

    advertising = await expense_service.list_expenses(db, USER, ExpenseFilters(category="Advertising"))
    assert [e["amount"] for e in advertising["data"]] == [200.0]

    searched = await expense_service.list_expenses(db, USER, ExpenseFilters(search="boost"))
    assert searched["total"] == 1

    cash_basis = await expense_service.list_expenses(
        db, USER, ExpenseFilters(date_basis="paid_date", start_date=date(2026, 3, 10), end_date=date(2026, 3, 10))
    )
    assert [e["id"] for e in cash_basis["data"]] == [first["id"]]

    with pytest.raises(ActionError) as exc_info:
        await expense_service.list_expenses(
            db, USER, ExpenseFilters(start_date=date(2026, 3, 2), end_date=date(2026, 3, 1))
        )
    assert exc_info.value.code == "common.invalid_date_range"


async def test_export_escapes_formula_cells(db):
    await expense_service.create_expense(db, USER, _expense(amount=50, note="=HYPERLINK(\"x\")"))
    exported = await expense_service.export_expenses(db, USER, ExpenseFilters())

    assert exported["filename"].startswith("expenses-")
    lines = exported["csv"].split("\n")
    assert lines[0].startswith("Date,Status,Category")
    assert "\"'=HYPERLINK(\"\"x\"\")\"" in lines[1]
    assert ",50.00," in lines[1]


async def test_export_without_rows_fails(db):
    with pytest.raises(ActionError) as exc_info:
        await expense_service.export_expenses(db, USER, ExpenseFilters())
    assert exc_info.value.code == "common.no_export_data"
