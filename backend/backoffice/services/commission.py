"""
CEO commission receipts and the director loan mirror.

The part of a commission the CEO transfers to the company becomes a TOP_UP on
the DIRECTOR_LOAN wallet, keyed by reference_id CEO_COMMISSION:<receipt id>.
The receipt is the primary record: when the ledger entry cannot be written
the receipt is kept and a warning is returned.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import duplicate, not_found, validation_error
from backoffice.core.messages import Notice
from backoffice.lib.bangkok_time import export_timestamp, format_bangkok
from backoffice.lib.csv_export import build_csv
from backoffice.lib.money import ZERO, as_float, round2, sum_signed, to_decimal
from backoffice.models.bank import BankAccount, BankTransaction
from backoffice.models.commission import CeoCommissionReceipt, CeoCommissionSource
from backoffice.models.wallet import Wallet, WalletLedger
from backoffice.schemas.commission import (
    CandidateFilters,
    CommissionCreate,
    CommissionFilters,
    CommissionFromBankCreate,
)
from backoffice.services.result import ActionResult

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "วันที่รับ Commission",
    "Platform",
    "ยอดรวม (Gross)",
    "ใช้ส่วนตัว",
    "โอนให้บริษัท",
    "บัญชีธนาคาร",
    "Bank Txn Ref",
    "หมายเหตุ",
    "Reference",
    "สร้างเมื่อ",
]

BALANCE_TOLERANCE = Decimal("0.01")


def _plain_number(value) -> str:
    return format(to_decimal(value).normalize(), "f")


def validate_commission_input(data: CommissionCreate) -> None:
    gross = to_decimal(data.gross_amount)
    personal = to_decimal(data.personal_used_amount)
    transferred = to_decimal(data.transferred_to_company_amount)

    if gross <= 0:
        raise validation_error("commission.gross_positive")
    if personal < 0:
        raise validation_error("commission.personal_negative")
    if transferred < 0:
        raise validation_error("commission.transferred_negative")
    # a full satang of difference is already a mismatch
    if abs(gross - (personal + transferred)) >= BALANCE_TOLERANCE:
        raise validation_error(
            "commission.balance_mismatch",
            gross=_plain_number(gross),
            personal=_plain_number(personal),
            transferred=_plain_number(transferred),
        )
    if not data.platform or not data.platform.strip():
        raise validation_error("commission.platform_required")
    if data.commission_date is None:
        raise validation_error("commission.date_required")


def build_receipt_response(
    receipt: CeoCommissionReceipt,
    bank_txn: Optional[BankTransaction] = None,
    bank_account: Optional[BankAccount] = None,
) -> dict:
    return {
        "id": receipt.id,
        "commission_date": receipt.commission_date.isoformat(),
        "platform": receipt.platform,
        "gross_amount": as_float(receipt.gross_amount),
        "personal_used_amount": as_float(receipt.personal_used_amount),
        "transferred_to_company_amount": as_float(receipt.transferred_to_company_amount),
        "note": receipt.note,
        "reference": receipt.reference,
        "bank_transaction_id": receipt.bank_transaction_id,
        "bank_transaction_description": bank_txn.description if bank_txn else None,
        "bank_account": bank_account.display_name if bank_account else None,
        "created_at": format_bangkok(receipt.created_at) if receipt.created_at else None,
    }


async def get_director_loan_wallet(db: AsyncSession, user_id: str) -> Optional[Wallet]:
    result = await db.execute(
        select(Wallet)
        .where(
            Wallet.created_by == user_id,
            Wallet.wallet_type == "DIRECTOR_LOAN",
            Wallet.is_active.is_(True),
        )
        .order_by(Wallet.created_at)
    )
    return result.scalars().first()


async def _insert_receipt(
    db: AsyncSession, user_id: str, data: CommissionCreate, bank_transaction_id: Optional[str] = None
) -> CeoCommissionReceipt:
    platform = data.platform.strip()
    receipt = CeoCommissionReceipt(
        created_by=user_id,
        commission_date=data.commission_date,
        platform=platform,
        gross_amount=round2(data.gross_amount),
        personal_used_amount=round2(data.personal_used_amount),
        transferred_to_company_amount=round2(data.transferred_to_company_amount),
        note=(data.note or "").strip() or None,
        reference=(data.reference or "").strip() or None,
        bank_transaction_id=bank_transaction_id,
    )
    db.add(receipt)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        if bank_transaction_id and "bank_transaction_id" in str(e.orig):
            raise duplicate("commission.bank_txn_declared")
        raise duplicate("commission.duplicate", date=data.commission_date.isoformat(), platform=platform)
    return receipt


async def _record_director_loan(
    db: AsyncSession, user_id: str, receipt: CeoCommissionReceipt, note: str
) -> Optional[Notice]:
    """
    Mirror the transferred amount on the director loan wallet.

    Runs in a SAVEPOINT so a failed ledger insert leaves the receipt intact.
    Returns a warning notice, or None when the entry exists afterwards.
    """
    wallet = await get_director_loan_wallet(db, user_id)
    if wallet is None:
        return Notice("commission.director_loan_warning", reason=Notice("commission.wallet_missing"))

    reference_id = f"CEO_COMMISSION:{receipt.id}"
    existing = (
        await db.execute(
            select(WalletLedger.id).where(
                WalletLedger.wallet_id == wallet.id, WalletLedger.reference_id == reference_id
            )
        )
    ).first()
    if existing:
        return None

    try:
        async with db.begin_nested():
            db.add(
                WalletLedger(
                    created_by=user_id,
                    wallet_id=wallet.id,
                    date=receipt.commission_date,
                    entry_type="TOP_UP",
                    direction="IN",
                    amount=receipt.transferred_to_company_amount,
                    source="MANUAL",
                    reference_id=reference_id,
                    note=note,
                )
            )
    except IntegrityError:
        logger.info(f"Director loan entry {reference_id} already recorded")
        return None
    except SQLAlchemyError as e:
        logger.warning(f"Director loan entry for receipt {receipt.id} failed: {e}")
        return Notice("commission.ledger_warning", reason=str(e))
    return None


async def _create_receipt_with_loan(
    db: AsyncSession,
    user_id: str,
    data: CommissionCreate,
    ledger_note: str,
    bank_transaction_id: Optional[str] = None,
) -> ActionResult:
    receipt = await _insert_receipt(db, user_id, data, bank_transaction_id)

    warning = None
    if receipt.transferred_to_company_amount > 0:
        warning = await _record_director_loan(db, user_id, receipt, ledger_note)

    await db.commit()
    await db.refresh(receipt)
    if warning is not None:
        logger.warning(f"Commission receipt {receipt.id} saved with warning: {warning}")
    else:
        logger.info(f"Commission receipt {receipt.id} saved for {user_id}")
    return ActionResult(data=build_receipt_response(receipt), warning=warning)


async def create_commission_receipt(db: AsyncSession, user_id: str, data: CommissionCreate) -> ActionResult:
    validate_commission_input(data)
    note = f"Commission โอนจาก CEO ({data.platform.strip()})"
    return await _create_receipt_with_loan(db, user_id, data, note)


async def create_commission_from_bank_transaction(
    db: AsyncSession, user_id: str, data: CommissionFromBankCreate
) -> ActionResult:
    validate_commission_input(data)

    bank_txn = (
        await db.execute(
            select(BankTransaction).where(
                BankTransaction.id == data.bank_transaction_id,
                BankTransaction.created_by == user_id,
            )
        )
    ).scalar_one_or_none()
    if bank_txn is None:
        raise not_found("commission.bank_txn_not_found")

    source = (
        await db.execute(
            select(CeoCommissionSource.id).where(
                CeoCommissionSource.created_by == user_id,
                CeoCommissionSource.bank_account_id == bank_txn.bank_account_id,
            )
        )
    ).first()
    if source is None:
        raise validation_error("commission.not_a_source")

    declared = (
        await db.execute(
            select(CeoCommissionReceipt.id).where(CeoCommissionReceipt.bank_transaction_id == bank_txn.id)
        )
    ).first()
    if declared:
        raise duplicate("commission.bank_txn_declared")

    note = f"Commission โอนจาก CEO ({data.platform.strip()}) - Bank Txn: {bank_txn.description or 'N/A'}"
    return await _create_receipt_with_loan(db, user_id, data, note, bank_transaction_id=bank_txn.id)


def _receipt_conditions(user_id: str, filters: CommissionFilters):
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise validation_error("common.invalid_date_range")
    conditions = [CeoCommissionReceipt.created_by == user_id]
    if filters.start_date:
        conditions.append(CeoCommissionReceipt.commission_date >= filters.start_date)
    if filters.end_date:
        conditions.append(CeoCommissionReceipt.commission_date <= filters.end_date)
    if filters.platform and filters.platform != "All":
        conditions.append(CeoCommissionReceipt.platform == filters.platform)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        conditions.append(
            or_(
                CeoCommissionReceipt.platform.ilike(pattern),
                CeoCommissionReceipt.note.ilike(pattern),
                CeoCommissionReceipt.reference.ilike(pattern),
            )
        )
    return conditions


def _receipts_with_bank():
    return (
        select(CeoCommissionReceipt, BankTransaction, BankAccount)
        .outerjoin(BankTransaction, CeoCommissionReceipt.bank_transaction_id == BankTransaction.id)
        .outerjoin(BankAccount, BankTransaction.bank_account_id == BankAccount.id)
    )


async def list_commission_receipts(
    db: AsyncSession, user_id: str, filters: CommissionFilters, page: int = 1, limit: int = 20
) -> dict:
    conditions = _receipt_conditions(user_id, filters)
    total = (
        await db.execute(select(func.count(CeoCommissionReceipt.id)).where(*conditions))
    ).scalar() or 0
    result = await db.execute(
        _receipts_with_bank()
        .where(*conditions)
        .order_by(CeoCommissionReceipt.commission_date.desc(), CeoCommissionReceipt.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [build_receipt_response(r, txn, acc) for r, txn, acc in result.all()],
        "total": total,
        "page": page,
        "limit": limit,
    }


async def get_commission_platforms(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(CeoCommissionReceipt.platform)
        .where(CeoCommissionReceipt.created_by == user_id)
        .distinct()
        .order_by(CeoCommissionReceipt.platform)
    )
    return [row[0] for row in result.all()]


async def get_director_loan_balance(db: AsyncSession, user_id: str) -> float:
    wallet = await get_director_loan_wallet(db, user_id)
    if wallet is None:
        return 0.0
    result = await db.execute(
        select(WalletLedger.direction, WalletLedger.amount).where(
            WalletLedger.wallet_id == wallet.id, WalletLedger.created_by == user_id
        )
    )
    signed = [
        to_decimal(amount) if direction == "IN" else -to_decimal(amount)
        for direction, amount in result.all()
    ]
    return as_float(sum_signed(signed))


async def get_commission_summary(db: AsyncSession, user_id: str, filters: CommissionFilters) -> dict:
    conditions = _receipt_conditions(user_id, filters)
    result = await db.execute(
        select(
            CeoCommissionReceipt.gross_amount,
            CeoCommissionReceipt.personal_used_amount,
            CeoCommissionReceipt.transferred_to_company_amount,
        ).where(*conditions)
    )
    gross = personal = transferred = ZERO
    for row in result.all():
        gross += to_decimal(row.gross_amount)
        personal += to_decimal(row.personal_used_amount)
        transferred += to_decimal(row.transferred_to_company_amount)

    return {
        "total_commissions": as_float(round2(gross)),
        "total_personal_used": as_float(round2(personal)),
        "total_transferred": as_float(round2(transferred)),
        # the loan balance is wallet-wide, independent of the receipt filters
        "director_loan_balance": await get_director_loan_balance(db, user_id),
    }


async def export_commission_receipts(db: AsyncSession, user_id: str, filters: CommissionFilters) -> dict:
    conditions = _receipt_conditions(user_id, filters)
    result = await db.execute(
        _receipts_with_bank().where(*conditions).order_by(CeoCommissionReceipt.commission_date.desc())
    )
    records = result.all()
    if not records:
        raise validation_error("common.no_export_data")

    rows = []
    for receipt, bank_txn, bank_account in records:
        rows.append([
            receipt.commission_date.isoformat(),
            receipt.platform,
            f"{round2(receipt.gross_amount):.2f}",
            f"{round2(receipt.personal_used_amount):.2f}",
            f"{round2(receipt.transferred_to_company_amount):.2f}",
            bank_account.display_name if bank_account else "Manual Entry",
            (bank_txn.description if bank_txn else None) or "-",
            receipt.note or "",
            receipt.reference or "",
            format_bangkok(receipt.created_at) if receipt.created_at else "",
        ])
    return {
        "filename": f"ceo_commission_{export_timestamp('%Y%m%d_%H%M%S')}.csv",
        "csv": build_csv(EXPORT_HEADERS, rows),
    }


async def get_commission_sources(db: AsyncSession, user_id: str) -> list:
    result = await db.execute(
        select(CeoCommissionSource, BankAccount)
        .join(BankAccount, CeoCommissionSource.bank_account_id == BankAccount.id)
        .where(CeoCommissionSource.created_by == user_id)
        .order_by(CeoCommissionSource.created_at)
    )
    return [
        {
            "id": source.id,
            "bank_account_id": source.bank_account_id,
            "bank_account": {
                "id": account.id,
                "bank_name": account.bank_name,
                "account_number": account.account_number,
                "account_type": account.account_type,
                "currency": account.currency,
                "is_active": account.is_active,
                "display_name": account.display_name,
            },
        }
        for source, account in result.all()
    ]


async def update_commission_sources(db: AsyncSession, user_id: str, bank_account_ids: list) -> dict:
    """Replace the caller's source accounts with the given set."""
    account_ids = list(dict.fromkeys(a for a in bank_account_ids if a))
    if account_ids:
        owned = await db.execute(
            select(BankAccount.id).where(BankAccount.id.in_(account_ids), BankAccount.created_by == user_id)
        )
        owned_ids = {row[0] for row in owned.all()}
        missing = [a for a in account_ids if a not in owned_ids]
        if missing:
            raise not_found("bank.account_not_found")

    await db.execute(
        delete(CeoCommissionSource)
        .where(CeoCommissionSource.created_by == user_id)
        .execution_options(synchronize_session=False)
    )
    for account_id in account_ids:
        db.add(CeoCommissionSource(created_by=user_id, bank_account_id=account_id))
    await db.commit()

    logger.info(f"Commission sources for {user_id} set to {len(account_ids)} accounts")
    return {"count": len(account_ids), "bank_account_ids": account_ids}


async def get_candidate_bank_transactions(
    db: AsyncSession, user_id: str, filters: CandidateFilters
) -> Tuple[list, int]:
    """Deposits on source accounts that have not been declared yet."""
    source_ids = [
        row[0]
        for row in (
            await db.execute(
                select(CeoCommissionSource.bank_account_id).where(CeoCommissionSource.created_by == user_id)
            )
        ).all()
    ]
    if not source_ids:
        raise validation_error("commission.no_sources")

    declared = (
        select(CeoCommissionReceipt.bank_transaction_id)
        .where(
            CeoCommissionReceipt.created_by == user_id,
            CeoCommissionReceipt.bank_transaction_id.isnot(None),
        )
    )
    query = (
        select(BankTransaction, BankAccount)
        .join(BankAccount, BankTransaction.bank_account_id == BankAccount.id)
        .where(
            BankTransaction.created_by == user_id,
            BankTransaction.bank_account_id.in_(source_ids),
            BankTransaction.deposit > 0,
            BankTransaction.id.notin_(declared),
        )
    )
    if filters.start_date:
        query = query.where(BankTransaction.txn_date >= filters.start_date)
    if filters.end_date:
        query = query.where(BankTransaction.txn_date <= filters.end_date)
    if filters.bank_account_id and filters.bank_account_id != "All":
        query = query.where(BankTransaction.bank_account_id == filters.bank_account_id)

    result = await db.execute(
        query.order_by(BankTransaction.txn_date.desc(), BankTransaction.created_at.desc())
    )
    candidates = [
        {
            "id": txn.id,
            "bank_account_id": txn.bank_account_id,
            "bank_account": account.display_name,
            "txn_date": txn.txn_date.isoformat(),
            "description": txn.description,
            "deposit": as_float(txn.deposit),
            "channel": txn.channel,
            "reference_id": txn.reference_id,
        }
        for txn, account in result.all()
    ]
    return candidates, len(candidates)
