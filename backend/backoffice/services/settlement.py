"""
Settlement reconciliation.

Imported settlements close the matching forecast (unsettled) rows. Matching is
done in memory on marketplace::txn_id and the updates are applied in batches of
RECONCILE_BATCH_SIZE, each batch in its own transaction.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import duplicate, not_found, validation_error
from backoffice.lib.bangkok_time import to_utc_naive, utc_now
from backoffice.lib.money import round2
from backoffice.models.import_batch import ImportBatch
from backoffice.models.settlement import SettlementTransaction, UnsettledTransaction
from backoffice.schemas.settlement import ReconcileResult, SettlementImport, UnsettledImport
from backoffice.services.import_batches import finalize_batch, start_batch

logger = logging.getLogger(__name__)


def match_key(marketplace: str, txn_id: str) -> str:
    return f"{marketplace}::{txn_id}"


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return to_utc_naive(value) if value is not None else None


async def _get_owned_batch(db: AsyncSession, user_id: str, batch_id: str) -> ImportBatch:
    batch = (
        await db.execute(
            select(ImportBatch).where(ImportBatch.id == batch_id, ImportBatch.created_by == user_id)
        )
    ).scalar_one_or_none()
    if batch is None:
        raise not_found("imports.not_found")
    return batch


async def reconcile_settlements(db: AsyncSession, user_id: str, import_batch_id: str) -> ReconcileResult:
    """Mark the forecasts matched by a settlement batch as settled."""
    await _get_owned_batch(db, user_id, import_batch_id)

    result = await db.execute(
        select(SettlementTransaction.marketplace, SettlementTransaction.txn_id, SettlementTransaction.settled_time)
        .where(
            SettlementTransaction.import_batch_id == import_batch_id,
            SettlementTransaction.created_by == user_id,
        )
    )
    settlements = result.all()
    outcome = ReconcileResult()
    if not settlements:
        return outcome

    txn_ids = list({s.txn_id for s in settlements})
    forecasts: Dict[str, tuple] = {}
    for chunk in _chunks(txn_ids, settings.RECONCILE_BATCH_SIZE):
        rows = await db.execute(
            select(
                UnsettledTransaction.id,
                UnsettledTransaction.marketplace,
                UnsettledTransaction.txn_id,
                UnsettledTransaction.status,
            ).where(UnsettledTransaction.created_by == user_id, UnsettledTransaction.txn_id.in_(chunk))
        )
        for row in rows.all():
            forecasts[match_key(row.marketplace, row.txn_id)] = (row.id, row.status)

    to_update = []
    seen = set()
    for settlement in settlements:
        forecast = forecasts.get(match_key(settlement.marketplace, settlement.txn_id))
        if forecast is None:
            outcome.not_found_count += 1
            continue
        forecast_id, status = forecast
        if status == "settled" or forecast_id in seen:
            outcome.already_settled_count += 1
            continue
        seen.add(forecast_id)
        to_update.append((forecast_id, settlement.settled_time or utc_now()))

    for index, chunk in enumerate(_chunks(to_update, settings.RECONCILE_BATCH_SIZE)):
        try:
            for forecast_id, settled_at in chunk:
                await db.execute(
                    update(UnsettledTransaction)
                    .where(UnsettledTransaction.id == forecast_id)
                    .values(status="settled", settled_at=settled_at, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
            await db.commit()
            outcome.settled_count += len(chunk)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Reconcile batch {index + 1} for import {import_batch_id} failed: {e}")
            outcome.errors.append(f"Batch {index + 1} update failed: {e}")

    logger.info(
        f"Reconciled import {import_batch_id}: settled {outcome.settled_count}, "
        f"already settled {outcome.already_settled_count}, not found {outcome.not_found_count}"
    )
    return outcome


async def get_reconcile_status(db: AsyncSession, user_id: str, import_batch_id: str) -> dict:
    await _get_owned_batch(db, user_id, import_batch_id)

    # same pairing as reconcile: a forecast belongs to the batch on marketplace and txn_id
    in_batch = (
        select(SettlementTransaction.id)
        .where(
            SettlementTransaction.import_batch_id == import_batch_id,
            SettlementTransaction.created_by == user_id,
            SettlementTransaction.marketplace == UnsettledTransaction.marketplace,
            SettlementTransaction.txn_id == UnsettledTransaction.txn_id,
        )
        .exists()
    )
    settlement_count = (
        await db.execute(
            select(func.count(SettlementTransaction.id)).where(
                SettlementTransaction.import_batch_id == import_batch_id,
                SettlementTransaction.created_by == user_id,
            )
        )
    ).scalar() or 0

    status_counts = await db.execute(
        select(UnsettledTransaction.status, func.count(UnsettledTransaction.id))
        .where(UnsettledTransaction.created_by == user_id, in_batch)
        .group_by(UnsettledTransaction.status)
    )
    counts = dict(status_counts.all())
    matched = counts.get("settled", 0)
    return {
        "import_batch_id": import_batch_id,
        "settlement_count": settlement_count,
        "matched_count": matched,
        "unsettled_count": counts.get("unsettled", 0),
        "not_found_count": max(settlement_count - sum(counts.values()), 0),
    }


async def import_settlements(db: AsyncSession, user_id: str, data: SettlementImport) -> dict:
    """Upsert settlement rows on (marketplace, txn_id) and optionally reconcile them."""
    marketplace = data.marketplace.strip().lower()
    if not marketplace:
        raise validation_error("settlement.marketplace_required")
    if not data.rows:
        raise validation_error("settlement.no_rows")

    batch = await start_batch(
        db,
        user_id,
        report_type="settlement",
        file_name=data.file_name,
        marketplace=marketplace,
        row_count=len(data.rows),
    )
    batch_id = batch.id

    rows_by_txn = {row.txn_id: row for row in data.rows if row.txn_id}
    existing: Dict[str, SettlementTransaction] = {}
    for chunk in _chunks(list(rows_by_txn), settings.RECONCILE_BATCH_SIZE):
        result = await db.execute(
            select(SettlementTransaction).where(
                SettlementTransaction.created_by == user_id,
                SettlementTransaction.marketplace == marketplace,
                SettlementTransaction.txn_id.in_(chunk),
            )
        )
        existing.update({s.txn_id: s for s in result.scalars().all()})

    inserted = updated = 0
    for txn_id, row in rows_by_txn.items():
        target = existing.get(txn_id)
        if target is None:
            target = SettlementTransaction(created_by=user_id, marketplace=marketplace, txn_id=txn_id)
            db.add(target)
            inserted += 1
        else:
            updated += 1
        target.order_id = row.order_id
        target.type = row.type
        target.settled_time = _naive(row.settled_time)
        target.settlement_amount = round2(row.settlement_amount)
        target.gross_revenue = round2(row.gross_revenue)
        target.fees_total = round2(row.fees_total)
        target.import_batch_id = batch_id

    settled_times = [t for t in (_naive(r.settled_time) for r in rows_by_txn.values()) if t is not None]
    if settled_times:
        batch.date_min = min(settled_times).date()
        batch.date_max = max(settled_times).date()
    finalize_batch(
        batch,
        inserted=inserted,
        updated=updated,
        skipped=len(data.rows) - len(rows_by_txn),
        notes=f"Settlements: {inserted} inserted, {updated} updated",
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate("settlement.duplicate_txn")

    logger.info(f"Imported {marketplace} settlements: +{inserted} ~{updated} (batch {batch_id})")
    response = {"batch_id": batch_id, "inserted": inserted, "updated": updated}
    if data.reconcile:
        response["reconcile"] = (await reconcile_settlements(db, user_id, batch_id)).model_dump()
    return response


async def import_unsettled(db: AsyncSession, user_id: str, data: UnsettledImport) -> dict:
    """Upsert forecast rows on (marketplace, txn_id); settled rows keep their status."""
    marketplace = data.marketplace.strip().lower()
    if not marketplace:
        raise validation_error("settlement.marketplace_required")
    if not data.rows:
        raise validation_error("settlement.no_rows")

    batch = await start_batch(
        db,
        user_id,
        report_type="unsettled",
        file_name=data.file_name,
        marketplace=marketplace,
        row_count=len(data.rows),
    )
    batch_id = batch.id

    rows_by_txn = {row.txn_id: row for row in data.rows if row.txn_id}
    existing: Dict[str, UnsettledTransaction] = {}
    for chunk in _chunks(list(rows_by_txn), settings.RECONCILE_BATCH_SIZE):
        result = await db.execute(
            select(UnsettledTransaction).where(
                UnsettledTransaction.created_by == user_id,
                UnsettledTransaction.marketplace == marketplace,
                UnsettledTransaction.txn_id.in_(chunk),
            )
        )
        existing.update({u.txn_id: u for u in result.scalars().all()})

    inserted = updated = 0
    for txn_id, row in rows_by_txn.items():
        target = existing.get(txn_id)
        if target is None:
            target = UnsettledTransaction(
                created_by=user_id, marketplace=marketplace, txn_id=txn_id, status="unsettled"
            )
            db.add(target)
            inserted += 1
        else:
            updated += 1
        target.related_order_id = row.related_order_id
        target.estimated_settle_time = _naive(row.estimated_settle_time)
        target.estimated_settlement_amount = round2(row.estimated_settlement_amount)
        target.import_batch_id = batch_id

    finalize_batch(
        batch,
        inserted=inserted,
        updated=updated,
        skipped=len(data.rows) - len(rows_by_txn),
        notes=f"Forecasts: {inserted} inserted, {updated} updated",
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate("settlement.duplicate_txn")

    logger.info(f"Imported {marketplace} forecasts: +{inserted} ~{updated} (batch {batch_id})")
    return {"batch_id": batch_id, "inserted": inserted, "updated": updated}


async def list_unsettled(
    db: AsyncSession, user_id: str, status: Optional[str] = "unsettled", page: int = 1, limit: int = 20
) -> dict:
    conditions = [UnsettledTransaction.created_by == user_id]
    if status:
        conditions.append(UnsettledTransaction.status == status)
    total = (await db.execute(select(func.count(UnsettledTransaction.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(UnsettledTransaction)
        .where(*conditions)
        .order_by(UnsettledTransaction.estimated_settle_time, UnsettledTransaction.txn_id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    data: List[dict] = [
        {
            "id": u.id,
            "marketplace": u.marketplace,
            "txn_id": u.txn_id,
            "related_order_id": u.related_order_id,
            "estimated_settle_time": u.estimated_settle_time.isoformat() if u.estimated_settle_time else None,
            "estimated_settlement_amount": float(u.estimated_settlement_amount or 0),
            "status": u.status,
            "settled_at": u.settled_at.isoformat() if u.settled_at else None,
        }
        for u in result.scalars().all()
    ]
    return {"data": data, "total": total, "page": page, "limit": limit}
