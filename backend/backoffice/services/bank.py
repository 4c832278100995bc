"""
Bank accounts, statement lines, balance checkpoints and statement import.
"""

import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind, duplicate, not_found, validation_error
from backoffice.lib.bangkok_time import export_timestamp, format_bangkok
from backoffice.lib.bank_statement_parser import (
    ParsedBankStatement,
    parse_bank_statement_auto,
    parse_bank_statement_manual,
    read_sheet_rows,
)
from backoffice.lib.csv_export import build_csv
from backoffice.lib.header_detector import detect_header_row, suggest_column_mapping
from backoffice.lib.money import ZERO, as_float, round2, to_decimal
from backoffice.lib.spreadsheet import SpreadsheetError
from backoffice.models.bank import BankAccount, BankOpeningBalance, BankReportedBalance, BankTransaction
from backoffice.schemas.bank import (
    BankAccountCreate,
    BankTransactionFilters,
    ColumnMapping,
    OpeningBalanceUpsert,
    ReportedBalanceCreate,
)
from backoffice.services.import_batches import (
    file_sha256,
    find_batch_by_hash,
    finalize_batch,
    mark_batch_failed,
    start_batch,
)

logger = logging.getLogger(__name__)

IMPORT_MODES = ("append", "replace_range", "replace_all")
REPORT_TYPE = "bank_statement"
PREVIEW_SAMPLE_ROWS = 5

EXPORT_HEADERS = [
    "Date",
    "Description",
    "Withdrawal",
    "Deposit",
    "Balance",
    "Running Balance",
    "Channel",
    "Reference ID",
    "Created At",
]


def build_account_response(account: BankAccount) -> dict:
    return {
        "id": account.id,
        "bank_name": account.bank_name,
        "account_number": account.account_number,
        "account_type": account.account_type,
        "currency": account.currency,
        "is_active": account.is_active,
        "display_name": account.display_name,
    }


def build_transaction_response(txn: BankTransaction) -> dict:
    return {
        "id": txn.id,
        "bank_account_id": txn.bank_account_id,
        "import_batch_id": txn.import_batch_id,
        "txn_date": txn.txn_date.isoformat(),
        "description": txn.description,
        "withdrawal": as_float(txn.withdrawal),
        "deposit": as_float(txn.deposit),
        "balance": as_float(txn.balance) if txn.balance is not None else None,
        "channel": txn.channel,
        "reference_id": txn.reference_id,
        "created_at": format_bangkok(txn.created_at) if txn.created_at else None,
    }


async def get_owned_account(db: AsyncSession, user_id: str, account_id: str) -> BankAccount:
    account = (
        await db.execute(
            select(BankAccount).where(BankAccount.id == account_id, BankAccount.created_by == user_id)
        )
    ).scalar_one_or_none()
    if account is None:
        raise not_found("bank.account_not_found")
    return account


async def list_bank_accounts(db: AsyncSession, user_id: str) -> List[dict]:
    result = await db.execute(
        select(BankAccount)
        .where(BankAccount.created_by == user_id, BankAccount.is_active.is_(True))
        .order_by(BankAccount.created_at.desc())
    )
    return [build_account_response(a) for a in result.scalars().all()]


async def create_bank_account(db: AsyncSession, user_id: str, account_in: BankAccountCreate) -> dict:
    bank_name = account_in.bank_name.strip()
    account_number = account_in.account_number.strip()
    if not bank_name or not account_number:
        raise validation_error("bank.account_fields_required")

    account = BankAccount(
        created_by=user_id,
        bank_name=bank_name,
        account_number=account_number,
        account_type=account_in.account_type,
        currency=account_in.currency,
        is_active=True,
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    logger.info(f"Bank account created: {account.display_name} by {user_id}")
    return build_account_response(account)


def _transaction_conditions(user_id: str, account_id: str, start: Optional[date], end: Optional[date]):
    if start and end and start > end:
        raise validation_error("common.invalid_date_range")
    conditions = [BankTransaction.created_by == user_id, BankTransaction.bank_account_id == account_id]
    if start:
        conditions.append(BankTransaction.txn_date >= start)
    if end:
        conditions.append(BankTransaction.txn_date <= end)
    return conditions


async def _fetch_all_transactions(db: AsyncSession, conditions) -> List[BankTransaction]:
    rows = []
    offset = 0
    while True:
        result = await db.execute(
            select(BankTransaction)
            .where(*conditions)
            .order_by(BankTransaction.txn_date, BankTransaction.created_at, BankTransaction.id)
            .offset(offset)
            .limit(settings.PAGE_SIZE)
        )
        page = result.scalars().all()
        rows.extend(page)
        if len(page) < settings.PAGE_SIZE:
            break
        offset += settings.PAGE_SIZE
    return rows


async def _opening_balance_record(db: AsyncSession, user_id: str, account_id: str) -> Optional[BankOpeningBalance]:
    result = await db.execute(
        select(BankOpeningBalance).where(
            BankOpeningBalance.created_by == user_id, BankOpeningBalance.bank_account_id == account_id
        )
    )
    return result.scalar_one_or_none()


async def get_bank_daily_summary(
    db: AsyncSession, user_id: str, account_id: str, start: date, end: date
) -> dict:
    """Cash in/out per day with a running balance that starts from the opening balance."""
    await get_owned_account(db, user_id, account_id)
    transactions = await _fetch_all_transactions(db, _transaction_conditions(user_id, account_id, start, end))

    opening = await _opening_balance_record(db, user_id, account_id)
    opening_balance = to_decimal(opening.opening_balance) if opening else ZERO

    daily = OrderedDict()
    for txn in transactions:
        day = daily.setdefault(txn.txn_date, {"cash_in": ZERO, "cash_out": ZERO, "count": 0})
        day["cash_in"] += to_decimal(txn.deposit)
        day["cash_out"] += to_decimal(txn.withdrawal)
        day["count"] += 1

    running = opening_balance
    summary = []
    for txn_date in sorted(daily):
        day = daily[txn_date]
        net = day["cash_in"] - day["cash_out"]
        running += net
        summary.append({
            "date": txn_date.isoformat(),
            "cash_in": as_float(round2(day["cash_in"])),
            "cash_out": as_float(round2(day["cash_out"])),
            "net": as_float(round2(net)),
            "running_balance": as_float(round2(running)),
            "transaction_count": day["count"],
        })

    return {
        "days": summary,
        "opening_balance_used": as_float(opening_balance),
        "opening_balance_date": opening.as_of_date.isoformat() if opening else None,
    }


async def get_bank_transactions(
    db: AsyncSession,
    user_id: str,
    account_id: str,
    filters: BankTransactionFilters,
    page: int = 1,
    limit: int = 50,
) -> dict:
    await get_owned_account(db, user_id, account_id)
    conditions = _transaction_conditions(user_id, account_id, filters.start_date, filters.end_date)
    search = (filters.search or "").strip()
    if search:
        conditions.append(BankTransaction.description.ilike(f"%{search}%"))

    total = (await db.execute(select(func.count(BankTransaction.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(BankTransaction)
        .where(*conditions)
        .order_by(BankTransaction.txn_date.desc(), BankTransaction.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [build_transaction_response(t) for t in result.scalars().all()],
        "total": total,
        "page": page,
        "limit": limit,
    }


async def export_bank_transactions(
    db: AsyncSession, user_id: str, account_id: str, filters: BankTransactionFilters
) -> dict:
    account = await get_owned_account(db, user_id, account_id)
    transactions = await _fetch_all_transactions(
        db, _transaction_conditions(user_id, account_id, filters.start_date, filters.end_date)
    )
    if not transactions:
        raise validation_error("common.no_export_data")

    opening = await _opening_balance_record(db, user_id, account_id)
    running = to_decimal(opening.opening_balance) if opening else ZERO
    rows = []
    for txn in transactions:
        running += to_decimal(txn.deposit) - to_decimal(txn.withdrawal)
        rows.append([
            txn.txn_date.isoformat(),
            txn.description or "",
            f"{round2(txn.withdrawal):.2f}",
            f"{round2(txn.deposit):.2f}",
            f"{round2(txn.balance):.2f}" if txn.balance is not None else "",
            f"{round2(running):.2f}",
            txn.channel or "",
            txn.reference_id or "",
            format_bangkok(txn.created_at) if txn.created_at else "",
        ])

    return {
        "filename": f"bank-{account.bank_name}-{account.account_number}-{export_timestamp()}.csv",
        "csv": build_csv(EXPORT_HEADERS, rows),
    }


def build_opening_balance_response(record: BankOpeningBalance) -> dict:
    return {
        "id": record.id,
        "bank_account_id": record.bank_account_id,
        "as_of_date": record.as_of_date.isoformat(),
        "opening_balance": as_float(record.opening_balance),
    }


async def get_opening_balance(db: AsyncSession, user_id: str, account_id: str) -> Optional[dict]:
    await get_owned_account(db, user_id, account_id)
    record = await _opening_balance_record(db, user_id, account_id)
    return build_opening_balance_response(record) if record else None


async def upsert_opening_balance(
    db: AsyncSession, user_id: str, account_id: str, data: OpeningBalanceUpsert
) -> dict:
    """One opening balance per account; saving again replaces it."""
    await get_owned_account(db, user_id, account_id)
    record = await _opening_balance_record(db, user_id, account_id)
    if record is None:
        record = BankOpeningBalance(created_by=user_id, bank_account_id=account_id)
        db.add(record)
    record.as_of_date = data.as_of_date
    record.opening_balance = round2(data.opening_balance)
    await db.commit()
    await db.refresh(record)
    logger.info(f"Opening balance for account {account_id}: {record.opening_balance} as of {record.as_of_date}")
    return build_opening_balance_response(record)


def build_reported_balance_response(record: BankReportedBalance) -> dict:
    return {
        "id": record.id,
        "bank_account_id": record.bank_account_id,
        "reported_as_of_date": record.reported_as_of_date.isoformat(),
        "reported_balance": as_float(record.reported_balance),
        "note": record.note,
    }


async def _latest_reported_balance(
    db: AsyncSession, user_id: str, account_id: str, as_of: Optional[date] = None, exact: bool = False
) -> Optional[BankReportedBalance]:
    query = select(BankReportedBalance).where(
        BankReportedBalance.created_by == user_id, BankReportedBalance.bank_account_id == account_id
    )
    if as_of is not None:
        query = query.where(
            BankReportedBalance.reported_as_of_date == as_of
            if exact
            else BankReportedBalance.reported_as_of_date <= as_of
        )
    result = await db.execute(
        query.order_by(BankReportedBalance.reported_as_of_date.desc(), BankReportedBalance.created_at.desc()).limit(1)
    )
    return result.scalars().first()


async def get_reported_balance(
    db: AsyncSession, user_id: str, account_id: str, as_of: Optional[date] = None
) -> Optional[dict]:
    await get_owned_account(db, user_id, account_id)
    record = await _latest_reported_balance(db, user_id, account_id, as_of, exact=True)
    return build_reported_balance_response(record) if record else None


async def save_reported_balance(
    db: AsyncSession, user_id: str, account_id: str, data: ReportedBalanceCreate
) -> dict:
    await get_owned_account(db, user_id, account_id)
    record = BankReportedBalance(
        created_by=user_id,
        bank_account_id=account_id,
        reported_as_of_date=data.reported_as_of_date,
        reported_balance=round2(data.reported_balance),
        note=(data.note or "").strip() or None,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return build_reported_balance_response(record)


async def get_bank_balance_summary(db: AsyncSession, user_id: str, account_id: str, as_of: date) -> dict:
    """Expected balance from the opening checkpoint, compared with what the bank reported."""
    await get_owned_account(db, user_id, account_id)
    opening = await _opening_balance_record(db, user_id, account_id)
    opening_balance = to_decimal(opening.opening_balance) if opening else ZERO
    start = opening.as_of_date if opening else None

    conditions = _transaction_conditions(user_id, account_id, None, as_of)
    if start is not None:
        conditions.append(BankTransaction.txn_date >= start)
    totals = (
        await db.execute(
            select(
                func.coalesce(func.sum(BankTransaction.deposit), 0),
                func.coalesce(func.sum(BankTransaction.withdrawal), 0),
            ).where(*conditions)
        )
    ).one()
    deposits = to_decimal(totals[0])
    withdrawals = to_decimal(totals[1])
    expected = opening_balance + deposits - withdrawals

    reported = await _latest_reported_balance(db, user_id, account_id, as_of)
    reported_balance = to_decimal(reported.reported_balance) if reported else None
    return {
        "as_of_date": as_of.isoformat(),
        "opening_balance": as_float(opening_balance),
        "opening_balance_date": start.isoformat() if start else None,
        "total_deposits": as_float(round2(deposits)),
        "total_withdrawals": as_float(round2(withdrawals)),
        "net_movement": as_float(round2(deposits - withdrawals)),
        "expected_balance": as_float(round2(expected)),
        "reported_balance": as_float(reported_balance) if reported_balance is not None else None,
        "reported_as_of_date": reported.reported_as_of_date.isoformat() if reported else None,
        "difference": as_float(round2(reported_balance - expected)) if reported_balance is not None else None,
    }


def _parse_statement(content: bytes, filename: str, mapping: Optional[ColumnMapping]) -> ParsedBankStatement:
    try:
        if mapping is not None:
            return parse_bank_statement_manual(content, filename, mapping.as_dict())
        return parse_bank_statement_auto(content, filename)
    except SpreadsheetError as exc:
        raise validation_error("bank.file_unreadable", detail=str(exc))


def _date_range(parsed: ParsedBankStatement) -> Optional[dict]:
    if parsed.date_range is None:
        return None
    start, end = parsed.date_range
    return {"start": start.isoformat(), "end": end.isoformat()}


def preview_bank_statement(content: bytes, filename: str, mapping: Optional[ColumnMapping] = None) -> dict:
    try:
        rows = read_sheet_rows(content, filename)
    except SpreadsheetError as exc:
        raise validation_error("bank.file_unreadable", detail=str(exc))
    detection = detect_header_row(rows)
    parsed = _parse_statement(content, filename, mapping)

    total_deposits = sum((t.deposit for t in parsed.transactions), ZERO)
    total_withdrawals = sum((t.withdrawal for t in parsed.transactions), ZERO)
    return {
        "file_name": filename,
        "file_hash": file_sha256(content),
        "format_type": parsed.format_type,
        "requires_manual_mapping": parsed.requires_manual_mapping,
        "header": detection.to_dict(),
        "suggested_mapping": suggest_column_mapping(detection.columns),
        "auto_mapping": parsed.auto_mapping,
        "date_range": _date_range(parsed),
        "row_count": len(parsed.transactions),
        "total_deposits": as_float(round2(total_deposits)),
        "total_withdrawals": as_float(round2(total_withdrawals)),
        "net": as_float(round2(total_deposits - total_withdrawals)),
        "sample_rows": [t.to_dict() for t in parsed.transactions[:PREVIEW_SAMPLE_ROWS]],
        "diagnostics": parsed.diagnostics.to_dict() if parsed.diagnostics else None,
        "errors": parsed.errors,
    }


def _txn_key(txn_date: date, withdrawal, deposit, description: Optional[str]) -> tuple:
    return (txn_date, round2(withdrawal), round2(deposit), (description or "").strip())


async def import_bank_statement(
    db: AsyncSession,
    user_id: str,
    account_id: str,
    content: bytes,
    filename: str,
    mode: str = "append",
    mapping: Optional[ColumnMapping] = None,
) -> dict:
    """
    Import a statement file into an account.

    append: the same file twice is refused, and lines already on the account
    (same date, amounts and description) are skipped.
    replace_range: the account's lines within the file's dates are replaced.
    replace_all: every line of the account is replaced.
    """
    if mode not in IMPORT_MODES:
        raise validation_error("bank.invalid_mode", mode=mode)
    await get_owned_account(db, user_id, account_id)

    parsed = _parse_statement(content, filename, mapping)
    if parsed.requires_manual_mapping:
        raise validation_error("bank.manual_mapping_required")
    if not parsed.transactions:
        raise validation_error("bank.no_transactions")

    file_hash = file_sha256(content)
    if mode == "append" and await find_batch_by_hash(db, user_id, file_hash, REPORT_TYPE):
        raise duplicate("bank.already_imported")

    start, end = parsed.date_range
    reuse = await find_batch_by_hash(db, user_id, file_hash, REPORT_TYPE, statuses=("failed", "processing"))
    diagnostics = parsed.diagnostics.to_dict() if parsed.diagnostics else None
    batch = await start_batch(
        db,
        user_id,
        report_type=REPORT_TYPE,
        file_name=filename,
        file_hash=file_hash,
        row_count=diagnostics["total_rows"] if diagnostics else len(parsed.transactions),
        date_min=start,
        date_max=end,
        metadata={
            "bank_account_id": account_id,
            "mode": mode,
            "format_type": parsed.format_type,
            "column_mapping": parsed.auto_mapping,
        },
        reuse=reuse,
    )
    await db.commit()
    batch_id = batch.id

    try:
        deleted = 0
        existing_keys = set()
        if mode == "replace_all":
            result = await db.execute(
                delete(BankTransaction)
                .where(BankTransaction.created_by == user_id, BankTransaction.bank_account_id == account_id)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        elif mode == "replace_range":
            result = await db.execute(
                delete(BankTransaction)
                .where(*_transaction_conditions(user_id, account_id, start, end))
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        else:
            existing = await db.execute(
                select(
                    BankTransaction.txn_date,
                    BankTransaction.withdrawal,
                    BankTransaction.deposit,
                    BankTransaction.description,
                ).where(*_transaction_conditions(user_id, account_id, start, end))
            )
            existing_keys = {_txn_key(*row) for row in existing.all()}

        inserted = 0
        duplicates = 0
        for txn in parsed.transactions:
            key = _txn_key(txn.txn_date, txn.withdrawal, txn.deposit, txn.description)
            if key in existing_keys:
                duplicates += 1
                continue
            db.add(
                BankTransaction(
                    created_by=user_id,
                    bank_account_id=account_id,
                    import_batch_id=batch_id,
                    txn_date=txn.txn_date,
                    description=txn.description or None,
                    withdrawal=txn.withdrawal,
                    deposit=txn.deposit,
                    balance=txn.balance,
                    channel=txn.channel or None,
                    reference_id=txn.reference_id or None,
                )
            )
            inserted += 1

        invalid_rows = (diagnostics["total_rows"] - diagnostics["parsed_rows"]) if diagnostics else 0
        skipped = duplicates + invalid_rows
        notes = f"Mode: {mode}, inserted {inserted}, duplicates {duplicates}, invalid rows {invalid_rows}"
        if deleted:
            notes += f", replaced {deleted}"
        finalize_batch(batch, inserted=inserted, skipped=skipped, errors=invalid_rows, notes=notes)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Bank statement import failed for batch {batch_id}: {e}")
        await mark_batch_failed(db, batch_id, str(e))
        raise ActionError(ErrorKind.BACKEND, "common.backend", detail=str(e)) from e

    logger.info(f"Imported bank statement {filename} into {account_id} ({mode}): +{inserted}, skipped {skipped}")
    return {
        "batch_id": batch_id,
        "inserted": inserted,
        "skipped": skipped,
        "deleted": deleted,
        "date_range": {"start": start.isoformat(), "end": end.isoformat()},
        "diagnostics": diagnostics,
    }
