from datetime import date

import pytest

from backoffice.core.errors import ActionError, ErrorKind
from backoffice.schemas.bank import (
    BankAccountCreate,
    BankTransactionFilters,
    ColumnMapping,
    OpeningBalanceUpsert,
    ReportedBalanceCreate,
)
from backoffice.services import bank as bank_service

from conftest import MARCH_1, OTHER_USER, USER

STATEMENT = (
    "Date,Description,Withdrawal,Deposit,Balance\n"
    "01/03/2026,Opening transfer,,1000.00,1100.00\n"
    "02/03/2026,Card payment,250.50,,849.50\n"
    "oops,Broken row,1,,\n"
).encode("utf-8")

NEXT_STATEMENT = (
    "Date,Description,Withdrawal,Deposit,Balance\n"
    "02/03/2026,Card payment,250.50,,849.50\n"
    "03/03/2026,Transfer in,,50.00,899.50\n"
).encode("utf-8")


async def _account(db, user_id=USER):
    return await bank_service.create_bank_account(
        db, user_id, BankAccountCreate(bank_name="KBANK", account_number="123-4-56789-0")
    )


def test_preview_reports_mapping_and_totals():
    preview = bank_service.preview_bank_statement(STATEMENT, "statement.csv")

    assert preview["format_type"] == "kbiz"
    assert preview["requires_manual_mapping"] is False
    assert preview["row_count"] == 2
    assert preview["total_deposits"] == 1000.0
    assert preview["total_withdrawals"] == 250.5
    assert preview["date_range"] == {"start": "2026-03-01", "end": "2026-03-02"}
    assert preview["diagnostics"]["invalid_date_count"] == 1
    assert preview["suggested_mapping"]["txn_date"] == "Date"


def test_preview_with_manual_mapping():
    content = b"When,What,Out,In\n05/03/2026,Coffee,45,\n"
    mapping = ColumnMapping(txn_date="When", description="What", withdrawal="Out", deposit="In")
    preview = bank_service.preview_bank_statement(content, "odd.csv", mapping)
    assert preview["format_type"] == "manual"
    assert preview["total_withdrawals"] == 45.0


def test_preview_of_empty_file_fails():
    with pytest.raises(ActionError) as exc_info:
        bank_service.preview_bank_statement(b"", "empty.csv")
    assert exc_info.value.code == "bank.file_unreadable"


async def test_import_append_and_balances(db):
    account = await _account(db)
    await bank_service.upsert_opening_balance(
        db, USER, account["id"], OpeningBalanceUpsert(as_of_date=MARCH_1, opening_balance=100)
    )

    result = await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")
    assert result["inserted"] == 2
    assert result["skipped"] == 1
    assert result["deleted"] == 0
    assert result["date_range"] == {"start": "2026-03-01", "end": "2026-03-02"}

    summary = await bank_service.get_bank_daily_summary(db, USER, account["id"], MARCH_1, date(2026, 3, 31))
    assert [day["running_balance"] for day in summary["days"]] == [1100.0, 849.5]
    assert summary["opening_balance_used"] == 100.0

    await bank_service.save_reported_balance(
        db, USER, account["id"], ReportedBalanceCreate(reported_as_of_date=date(2026, 3, 2), reported_balance=850)
    )
    balance = await bank_service.get_bank_balance_summary(db, USER, account["id"], date(2026, 3, 5))
    assert balance["expected_balance"] == 849.5
    assert balance["reported_balance"] == 850.0
    assert balance["reported_as_of_date"] == "2026-03-02"
    assert balance["difference"] == 0.5

    assert await bank_service.get_reported_balance(db, USER, account["id"], date(2026, 3, 5)) is None
    exact = await bank_service.get_reported_balance(db, USER, account["id"], date(2026, 3, 2))
    assert exact["reported_balance"] == 850.0


async def test_same_file_twice_is_refused_in_append_mode(db):
    account = await _account(db)
    await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")

    with pytest.raises(ActionError) as exc_info:
        await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")
    assert exc_info.value.kind == ErrorKind.DUPLICATE
    assert exc_info.value.code == "bank.already_imported"


async def test_append_skips_lines_already_on_account(db):
    account = await _account(db)
    await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")

    result = await bank_service.import_bank_statement(db, USER, account["id"], NEXT_STATEMENT, "next.csv")
    assert result["inserted"] == 1
    assert result["skipped"] == 1

    listing = await bank_service.get_bank_transactions(db, USER, account["id"], BankTransactionFilters())
    assert listing["total"] == 3
    assert listing["data"][0]["description"] == "Transfer in"

    searched = await bank_service.get_bank_transactions(
        db, USER, account["id"], BankTransactionFilters(search="card")
    )
    assert searched["total"] == 1


async def test_replace_modes(db):
    account = await _account(db)
    await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")

    ranged = await bank_service.import_bank_statement(
        db, USER, account["id"], NEXT_STATEMENT, "next.csv", mode="replace_range"
    )
    assert ranged["deleted"] == 1
    assert ranged["inserted"] == 2

    everything = await bank_service.import_bank_statement(
        db, USER, account["id"], STATEMENT, "statement.csv", mode="replace_all"
    )
    assert everything["deleted"] == 3
    assert everything["inserted"] == 2


async def test_import_rejections(db):
    account = await _account(db)

    with pytest.raises(ActionError) as exc_info:
        await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "s.csv", mode="merge")
    assert exc_info.value.code == "bank.invalid_mode"

    with pytest.raises(ActionError) as exc_info:
        await bank_service.import_bank_statement(db, USER, account["id"], b"Foo,Bar\n1,2\n", "odd.csv")
    assert exc_info.value.code == "bank.manual_mapping_required"

    with pytest.raises(ActionError) as exc_info:
        await bank_service.import_bank_statement(
            db, USER, account["id"], b"Date,Description,Withdrawal,Deposit\n01/03/2026,Zero,0,0\n", "zero.csv"
        )
    assert exc_info.value.code == "bank.no_transactions"

    other = await _account(db, user_id=OTHER_USER)
    with pytest.raises(ActionError) as exc_info:
        await bank_service.import_bank_statement(db, USER, other["id"], STATEMENT, "statement.csv")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


async def test_export_has_running_balance(db):
    account = await _account(db)
    await bank_service.upsert_opening_balance(
        db, USER, account["id"], OpeningBalanceUpsert(as_of_date=MARCH_1, opening_balance=100)
    )
    await bank_service.import_bank_statement(db, USER, account["id"], STATEMENT, "statement.csv")

    exported = await bank_service.export_bank_transactions(db, USER, account["id"], BankTransactionFilters())
    lines = exported["csv"].split("\n")
    assert lines[1].startswith("2026-03-01,Opening transfer,0.00,1000.00,1100.00,1100.00")
    assert lines[2].startswith("2026-03-02,Card payment,250.50,0.00,849.50,849.50")
