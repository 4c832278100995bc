"""
Wallets and wallet ledger entries.

Ledger rules:
  TOP_UP -> IN, SPEND -> OUT, REFUND -> IN, ADJUSTMENT either way
  ADS wallets: SPEND only from imported ads reports (with import_batch_id)
  TOP_UP is always MANUAL
  IMPORTED entries are read-only here; they are removed by rolling back their batch
"""

import logging
import re
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import duplicate, not_found, validation_error
from backoffice.lib.bangkok_time import export_timestamp, format_bangkok
from backoffice.lib.csv_export import build_csv
from backoffice.lib.money import ZERO, as_float, round2, to_decimal
from backoffice.models.wallet import DIRECTIONS, ENTRY_TYPES, WALLET_TYPES, Wallet, WalletLedger
from backoffice.schemas.wallet import LedgerEntryCreate, LedgerEntryUpdate, LedgerFilters, WalletCreate

logger = logging.getLogger(__name__)

EXPORT_HEADERS = ["Date", "Entry Type", "Direction", "Amount", "Source", "Reference ID", "Note", "Created At"]

REQUIRED_DIRECTION = {
    "TOP_UP": ("IN", "wallets.topup_direction"),
    "SPEND": ("OUT", "wallets.spend_direction"),
    "REFUND": ("IN", "wallets.refund_direction"),
}


def validate_ledger_entry(
    wallet_type: str,
    entry_type: str,
    direction: str,
    source: str,
    import_batch_id: Optional[str] = None,
) -> None:
    """Raise a validation error for the first rule the entry breaks."""
    if entry_type not in ENTRY_TYPES or direction not in DIRECTIONS:
        raise validation_error("wallets.invalid_entry")

    required = REQUIRED_DIRECTION.get(entry_type)
    if required and direction != required[0]:
        raise validation_error(required[1])

    if wallet_type == "ADS":
        if entry_type == "SPEND" and source == "MANUAL":
            raise validation_error("wallets.ads_manual_spend")
        if entry_type == "SPEND" and source == "IMPORTED" and not import_batch_id:
            raise validation_error("wallets.ads_spend_batch")
        if entry_type == "TOP_UP" and source != "MANUAL":
            raise validation_error("wallets.ads_topup_manual")

    if entry_type == "TOP_UP" and source != "MANUAL":
        raise validation_error("wallets.topup_manual")

    if source == "IMPORTED" and not import_batch_id:
        raise validation_error("wallets.imported_batch")


def build_wallet_response(wallet: Wallet) -> dict:
    return {
        "id": wallet.id,
        "name": wallet.name,
        "wallet_type": wallet.wallet_type,
        "currency": wallet.currency,
        "is_active": wallet.is_active,
        "description": wallet.description,
    }


def build_entry_response(entry: WalletLedger) -> dict:
    return {
        "id": entry.id,
        "wallet_id": entry.wallet_id,
        "date": entry.date.isoformat(),
        "entry_type": entry.entry_type,
        "direction": entry.direction,
        "amount": as_float(entry.amount),
        "source": entry.source,
        "import_batch_id": entry.import_batch_id,
        "reference_id": entry.reference_id,
        "note": entry.note,
        "created_at": format_bangkok(entry.created_at) if entry.created_at else None,
    }


async def get_owned_wallet(db: AsyncSession, user_id: str, wallet_id: Optional[str]) -> Wallet:
    if not wallet_id:
        raise validation_error("wallets.wallet_required")
    wallet = (
        await db.execute(select(Wallet).where(Wallet.id == wallet_id, Wallet.created_by == user_id))
    ).scalar_one_or_none()
    if wallet is None:
        raise not_found("wallets.not_found")
    return wallet


async def _get_owned_entry(db: AsyncSession, user_id: str, entry_id: str) -> WalletLedger:
    entry = (
        await db.execute(
            select(WalletLedger).where(WalletLedger.id == entry_id, WalletLedger.created_by == user_id)
        )
    ).scalar_one_or_none()
    if entry is None:
        raise not_found("wallets.entry_not_found")
    return entry


async def list_wallets(db: AsyncSession, user_id: str, active_only: bool = True) -> list:
    query = select(Wallet).where(Wallet.created_by == user_id)
    if active_only:
        query = query.where(Wallet.is_active.is_(True))
    result = await db.execute(query.order_by(Wallet.name))
    return [build_wallet_response(w) for w in result.scalars().all()]


async def create_wallet(db: AsyncSession, user_id: str, wallet_in: WalletCreate) -> dict:
    if wallet_in.wallet_type not in WALLET_TYPES:
        raise validation_error("wallets.invalid_type")
    wallet = Wallet(
        created_by=user_id,
        name=wallet_in.name.strip(),
        wallet_type=wallet_in.wallet_type,
        currency=(wallet_in.currency or "THB").upper(),
        description=wallet_in.description,
    )
    db.add(wallet)
    await db.commit()
    await db.refresh(wallet)
    logger.info(f"Wallet {wallet.id} ({wallet.wallet_type}) created by {user_id}")
    return build_wallet_response(wallet)


def _check_amount_and_date(entry_date: Optional[date], amount) -> None:
    if entry_date is None:
        raise validation_error("common.date_required")
    if to_decimal(amount) <= 0:
        raise validation_error("common.amount_positive")


async def _commit_entry(db: AsyncSession) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Ledger reference conflict: {e.orig}")
        raise duplicate("wallets.duplicate_reference")


async def create_ledger_entry(db: AsyncSession, user_id: str, entry_in: LedgerEntryCreate) -> dict:
    if not entry_in.wallet_id:
        raise validation_error("wallets.wallet_required")
    _check_amount_and_date(entry_in.date, entry_in.amount)

    wallet = await get_owned_wallet(db, user_id, entry_in.wallet_id)
    validate_ledger_entry(wallet.wallet_type, entry_in.entry_type, entry_in.direction, "MANUAL")

    entry = WalletLedger(
        created_by=user_id,
        wallet_id=wallet.id,
        date=entry_in.date,
        entry_type=entry_in.entry_type,
        direction=entry_in.direction,
        amount=round2(entry_in.amount),
        source="MANUAL",
        reference_id=(entry_in.reference_id or "").strip() or None,
        note=(entry_in.note or "").strip() or None,
    )
    db.add(entry)
    await _commit_entry(db)
    await db.refresh(entry)
    return build_entry_response(entry)


async def update_ledger_entry(
    db: AsyncSession, user_id: str, entry_id: str, entry_in: LedgerEntryUpdate
) -> dict:
    _check_amount_and_date(entry_in.date, entry_in.amount)

    entry = await _get_owned_entry(db, user_id, entry_id)
    if entry.source == "IMPORTED":
        raise validation_error("wallets.imported_readonly")

    wallet = await get_owned_wallet(db, user_id, entry.wallet_id)
    validate_ledger_entry(
        wallet.wallet_type, entry_in.entry_type, entry_in.direction, entry.source, entry.import_batch_id
    )

    entry.date = entry_in.date
    entry.entry_type = entry_in.entry_type
    entry.direction = entry_in.direction
    entry.amount = round2(entry_in.amount)
    entry.reference_id = (entry_in.reference_id or "").strip() or None
    entry.note = (entry_in.note or "").strip() or None
    await _commit_entry(db)
    await db.refresh(entry)
    return build_entry_response(entry)


async def delete_ledger_entry(db: AsyncSession, user_id: str, entry_id: str) -> dict:
    entry = await _get_owned_entry(db, user_id, entry_id)
    if entry.source == "IMPORTED":
        raise validation_error("wallets.imported_undeletable")
    await db.delete(entry)
    await db.commit()
    return {"deleted_id": entry_id}


async def list_ledger_entries(
    db: AsyncSession, user_id: str, filters: LedgerFilters, page: int = 1, limit: int = 20
) -> dict:
    await get_owned_wallet(db, user_id, filters.wallet_id)
    conditions = _ledger_conditions(user_id, filters)
    result = await db.execute(
        select(WalletLedger)
        .where(*conditions)
        .order_by(WalletLedger.date.desc(), WalletLedger.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit + 1)
    )
    entries = result.scalars().all()
    return {
        "data": [build_entry_response(e) for e in entries[:limit]],
        "has_more": len(entries) > limit,
        "page": page,
        "limit": limit,
    }


async def get_wallet_balance(
    db: AsyncSession, user_id: str, wallet_id: str, start: date, end: date
) -> dict:
    if start > end:
        raise validation_error("common.invalid_date_range")
    wallet = await get_owned_wallet(db, user_id, wallet_id)

    result = await db.execute(
        select(WalletLedger.date, WalletLedger.entry_type, WalletLedger.direction, WalletLedger.amount).where(
            WalletLedger.wallet_id == wallet.id,
            WalletLedger.created_by == user_id,
            WalletLedger.date <= end,
        )
    )

    opening = ZERO
    totals = {
        "total_in": ZERO,
        "total_out": ZERO,
        "top_up_total": ZERO,
        "spend_total": ZERO,
        "refund_total": ZERO,
        "adjustment_in": ZERO,
        "adjustment_out": ZERO,
    }
    for row in result.all():
        amount = to_decimal(row.amount)
        if row.date < start:
            opening += amount if row.direction == "IN" else -amount
            continue
        if row.direction == "IN":
            totals["total_in"] += amount
        else:
            totals["total_out"] += amount
        if row.entry_type == "TOP_UP":
            totals["top_up_total"] += amount
        elif row.entry_type == "SPEND":
            totals["spend_total"] += amount
        elif row.entry_type == "REFUND":
            totals["refund_total"] += amount
        elif row.entry_type == "ADJUSTMENT":
            key = "adjustment_in" if row.direction == "IN" else "adjustment_out"
            totals[key] += amount

    net_change = totals["total_in"] - totals["total_out"]
    return {
        "wallet_id": wallet.id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "opening_balance": as_float(round2(opening)),
        **{key: as_float(round2(value)) for key, value in totals.items()},
        "net_change": as_float(round2(net_change)),
        "closing_balance": as_float(round2(opening + net_change)),
    }


def _ledger_conditions(user_id: str, filters: LedgerFilters):
    conditions = [WalletLedger.created_by == user_id, WalletLedger.wallet_id == filters.wallet_id]
    if filters.start_date:
        conditions.append(WalletLedger.date >= filters.start_date)
    if filters.end_date:
        conditions.append(WalletLedger.date <= filters.end_date)
    if filters.entry_type and filters.entry_type != "All":
        conditions.append(WalletLedger.entry_type == filters.entry_type)
    if filters.source and filters.source != "All":
        conditions.append(WalletLedger.source == filters.source)
    return conditions


async def export_wallet_ledger(db: AsyncSession, user_id: str, filters: LedgerFilters) -> dict:
    wallet = await get_owned_wallet(db, user_id, filters.wallet_id)
    conditions = _ledger_conditions(user_id, filters)

    entries = []
    offset = 0
    while True:
        result = await db.execute(
            select(WalletLedger)
            .where(*conditions)
            .order_by(WalletLedger.date.desc(), WalletLedger.id)
            .offset(offset)
            .limit(settings.PAGE_SIZE)
        )
        page = result.scalars().all()
        entries.extend(page)
        if len(page) < settings.PAGE_SIZE:
            break
        offset += settings.PAGE_SIZE

    if not entries:
        raise validation_error("common.no_export_data")

    rows = [
        [
            e.date.isoformat(),
            e.entry_type,
            e.direction,
            f"{round2(e.amount):.2f}",
            e.source,
            e.reference_id or "",
            e.note or "",
            format_bangkok(e.created_at) if e.created_at else "",
        ]
        for e in entries
    ]
    wallet_slug = re.sub(r"[^a-z0-9]", "-", wallet.name, flags=re.IGNORECASE).lower()
    return {
        "filename": f"wallet-{wallet_slug}-{export_timestamp()}.csv",
        "csv": build_csv(EXPORT_HEADERS, rows),
    }
