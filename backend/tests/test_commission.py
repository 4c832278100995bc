from datetime import date

import pytest
from sqlalchemy import select

from backoffice.core.errors import ActionError, ErrorKind
from backoffice.models import BankAccount, BankTransaction, Wallet, WalletLedger
from backoffice.schemas.commission import (
    CandidateFilters,
    CommissionCreate,
    CommissionFilters,
    CommissionFromBankCreate,
)
from backoffice.services import commission as commission_service

from conftest import MARCH_1, USER


def _receipt(**overrides):
    data = {
        "commission_date": MARCH_1,
        "platform": "TikTok",
        "gross_amount": 1000,
        "personal_used_amount": 400,
        "transferred_to_company_amount": 600,
    }
    data.update(overrides)
    return CommissionCreate(**data)


async def _loan_wallet(db):
    wallet = Wallet(created_by=USER, name="Director loan", wallet_type="DIRECTOR_LOAN")
    db.add(wallet)
    await db.commit()
    return wallet


async def _bank_deposit(db, amount=500, description="Commission TikTok"):
    account = BankAccount(created_by=USER, bank_name="KBANK", account_number="123-4-56789-0")
    db.add(account)
    await db.flush()
    txn = BankTransaction(
        created_by=USER,
        bank_account_id=account.id,
        txn_date=MARCH_1,
        description=description,
        withdrawal=0,
        deposit=amount,
    )
    db.add(txn)
    await db.commit()
    return account, txn


def test_gross_must_equal_personal_plus_transferred():
    with pytest.raises(ActionError) as exc_info:
        commission_service.validate_commission_input(_receipt(personal_used_amount=100))
    assert exc_info.value.code == "commission.balance_mismatch"
    assert exc_info.value.params == {"gross": "1000", "personal": "100", "transferred": "600"}

    commission_service.validate_commission_input(
        _receipt(gross_amount=100, personal_used_amount=30, transferred_to_company_amount=70)
    )


def test_one_satang_difference_is_a_mismatch():
    for transferred in (69.99, 70.01):
        with pytest.raises(ActionError) as exc_info:
            commission_service.validate_commission_input(
                _receipt(gross_amount=100, personal_used_amount=30, transferred_to_company_amount=transferred)
            )
        assert exc_info.value.code == "commission.balance_mismatch"
    assert exc_info.value.params == {"gross": "100", "personal": "30", "transferred": "70.01"}


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"gross_amount": 0, "personal_used_amount": 0, "transferred_to_company_amount": 0}, "commission.gross_positive"),
        ({"platform": "  "}, "commission.platform_required"),
        ({"commission_date": None}, "commission.date_required"),
    ],
)
def test_commission_input_rules(overrides, code):
    with pytest.raises(ActionError) as exc_info:
        commission_service.validate_commission_input(_receipt(**overrides))
    assert exc_info.value.code == code


async def test_transfer_is_mirrored_on_director_loan(db):
    wallet = await _loan_wallet(db)
    result = await commission_service.create_commission_receipt(db, USER, _receipt())

    assert result.warning is None
    entries = (await db.execute(select(WalletLedger).where(WalletLedger.wallet_id == wallet.id))).scalars().all()
    assert len(entries) == 1
    assert entries[0].reference_id == f"CEO_COMMISSION:{result.data['id']}"
    assert entries[0].entry_type == "TOP_UP"
    assert entries[0].direction == "IN"

    assert await commission_service.get_director_loan_balance(db, USER) == 600.0
    summary = await commission_service.get_commission_summary(db, USER, CommissionFilters())
    assert summary == {
        "total_commissions": 1000.0,
        "total_personal_used": 400.0,
        "total_transferred": 600.0,
        "director_loan_balance": 600.0,
    }


async def test_receipt_kept_with_warning_when_wallet_missing(db):
    result = await commission_service.create_commission_receipt(db, USER, _receipt())

    assert result.warning.code == "commission.director_loan_warning"
    assert result.warning.params["reason"].code == "commission.wallet_missing"
    assert result.render_warning("en")
    listing = await commission_service.list_commission_receipts(db, USER, CommissionFilters())
    assert listing["total"] == 1


async def test_nothing_transferred_writes_no_ledger_entry(db):
    await _loan_wallet(db)
    result = await commission_service.create_commission_receipt(
        db, USER, _receipt(personal_used_amount=1000, transferred_to_company_amount=0)
    )
    assert result.warning is None
    assert await commission_service.get_director_loan_balance(db, USER) == 0.0


async def test_same_date_and_platform_is_duplicate(db):
    await commission_service.create_commission_receipt(db, USER, _receipt())
    with pytest.raises(ActionError) as exc_info:
        await commission_service.create_commission_receipt(db, USER, _receipt())
    assert exc_info.value.kind == ErrorKind.DUPLICATE
    assert exc_info.value.code == "commission.duplicate"


async def test_declare_bank_deposit(db):
    await _loan_wallet(db)
    account, txn = await _bank_deposit(db)

    with pytest.raises(ActionError) as exc_info:
        await commission_service.get_candidate_bank_transactions(db, USER, CandidateFilters())
    assert exc_info.value.code == "commission.no_sources"

    payload = CommissionFromBankCreate(
        bank_transaction_id=txn.id,
        commission_date=MARCH_1,
        platform="Shopee",
        gross_amount=500,
        transferred_to_company_amount=500,
    )
    with pytest.raises(ActionError) as exc_info:
        await commission_service.create_commission_from_bank_transaction(db, USER, payload)
    assert exc_info.value.code == "commission.not_a_source"

    await commission_service.update_commission_sources(db, USER, [account.id])
    candidates, total = await commission_service.get_candidate_bank_transactions(db, USER, CandidateFilters())
    assert total == 1
    assert candidates[0]["id"] == txn.id

    result = await commission_service.create_commission_from_bank_transaction(db, USER, payload)
    assert result.data["bank_transaction_id"] == txn.id

    candidates, total = await commission_service.get_candidate_bank_transactions(db, USER, CandidateFilters())
    assert total == 0

    with pytest.raises(ActionError) as exc_info:
        await commission_service.create_commission_from_bank_transaction(
            db, USER, payload.model_copy(update={"commission_date": date(2026, 3, 2)})
        )
    assert exc_info.value.code == "commission.bank_txn_declared"


async def test_sources_must_belong_to_user(db):
    with pytest.raises(ActionError) as exc_info:
        await commission_service.update_commission_sources(db, USER, ["missing-account"])
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


async def test_export_lists_manual_entries(db):
    await commission_service.create_commission_receipt(db, USER, _receipt(note="March"))
    exported = await commission_service.export_commission_receipts(db, USER, CommissionFilters())
    line = exported["csv"].split("\n")[1]
    assert line.startswith("2026-03-01,TikTok,1000.00,400.00,600.00,Manual Entry,-,March")
