"""
Import batch lifecycle: create, finalize, list, stale cleanup and rollback.
"""

import hashlib
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import not_found
from backoffice.lib.bangkok_time import format_bangkok, utc_now
from backoffice.models.ads import AdDailyPerformance
from backoffice.models.bank import BankTransaction
from backoffice.models.import_batch import ImportBatch
from backoffice.models.sales_order import SalesOrder
from backoffice.models.wallet import WalletLedger

logger = logging.getLogger(__name__)

STALE_NOTE = "Marked as failed due to timeout (> 1 hour) - Automatic cleanup"


def file_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


async def find_batch_by_hash(
    db: AsyncSession,
    user_id: str,
    file_hash: str,
    report_type: Optional[str] = None,
    statuses=("success",),
) -> Optional[ImportBatch]:
    query = select(ImportBatch).where(
        ImportBatch.created_by == user_id,
        ImportBatch.file_hash == file_hash,
        ImportBatch.status.in_(statuses),
    )
    if report_type:
        query = query.where(ImportBatch.report_type == report_type)
    result = await db.execute(query.order_by(ImportBatch.created_at.desc()))
    return result.scalars().first()


async def start_batch(
    db: AsyncSession,
    user_id: str,
    *,
    report_type: str,
    file_name: Optional[str] = None,
    file_hash: Optional[str] = None,
    marketplace: Optional[str] = None,
    row_count: int = 0,
    date_min: Optional[date] = None,
    date_max: Optional[date] = None,
    metadata: Optional[dict] = None,
    reuse: Optional[ImportBatch] = None,
) -> ImportBatch:
    """Create a processing batch, or reset a failed/processing one for a retry."""
    batch = reuse or ImportBatch(created_by=user_id)
    batch.report_type = report_type
    batch.file_name = file_name
    batch.file_hash = file_hash
    batch.marketplace = marketplace
    batch.status = "processing"
    batch.row_count = row_count
    batch.inserted_count = 0
    batch.updated_count = 0
    batch.skipped_count = 0
    batch.error_count = 0
    batch.notes = None
    batch.date_min = date_min
    batch.date_max = date_max
    batch.metadata_json = metadata
    if reuse is None:
        db.add(batch)
    await db.flush()
    return batch


def finalize_batch(
    batch: ImportBatch,
    *,
    inserted: int,
    updated: int = 0,
    skipped: int = 0,
    errors: int = 0,
    notes: Optional[str] = None,
) -> ImportBatch:
    """Success unless nothing at all was written."""
    batch.inserted_count = inserted
    batch.updated_count = updated
    batch.skipped_count = skipped
    batch.error_count = errors
    batch.status = "success" if (inserted or updated) else "failed"
    batch.notes = notes
    return batch


async def mark_batch_failed(db: AsyncSession, batch_id: str, reason: str) -> None:
    """Record a failed import after the import transaction was rolled back."""
    await db.execute(
        update(ImportBatch)
        .where(ImportBatch.id == batch_id)
        .values(status="failed", notes=reason[:500], updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    await db.commit()


def build_batch_response(batch: ImportBatch) -> dict:
    return {
        "id": batch.id,
        "marketplace": batch.marketplace,
        "report_type": batch.report_type,
        "file_name": batch.file_name,
        "status": batch.status,
        "status_display": batch.status_display,
        "row_count": batch.row_count,
        "inserted_count": batch.inserted_count,
        "updated_count": batch.updated_count,
        "skipped_count": batch.skipped_count,
        "error_count": batch.error_count,
        "notes": batch.notes,
        "date_min": batch.date_min.isoformat() if batch.date_min else None,
        "date_max": batch.date_max.isoformat() if batch.date_max else None,
        "created_at": format_bangkok(batch.created_at) if batch.created_at else None,
    }


async def list_import_batches(
    db: AsyncSession,
    user_id: str,
    *,
    report_type: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    conditions = [ImportBatch.created_by == user_id]
    if report_type:
        conditions.append(ImportBatch.report_type == report_type)
    if status:
        conditions.append(ImportBatch.status == status)

    total = (await db.execute(select(func.count(ImportBatch.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(ImportBatch)
        .where(*conditions)
        .order_by(ImportBatch.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [build_batch_response(b) for b in result.scalars().all()],
        "total": total,
        "page": page,
        "limit": limit,
    }


async def cleanup_stale_import_batches(db: AsyncSession, user_id: Optional[str] = None) -> int:
    """
    Mark batches stuck in `processing` as failed.

    With no user_id every user's batches are cleaned (scheduler run).
    """
    cutoff = utc_now() - timedelta(minutes=settings.IMPORT_STALE_AFTER_MINUTES)
    stmt = (
        update(ImportBatch)
        .where(ImportBatch.status == "processing", ImportBatch.created_at < cutoff)
        .values(status="failed", notes=STALE_NOTE, updated_at=utc_now())
    )
    if user_id:
        stmt = stmt.where(ImportBatch.created_by == user_id)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.info(f"Cleaned up {count} stale import batches" + (f" for user {user_id}" if user_id else ""))
    return count


async def rollback_import_batch(db: AsyncSession, user_id: str, batch_id: str) -> dict:
    """Delete everything the batch wrote and mark it rolled_back, in one transaction."""
    batch = (
        await db.execute(
            select(ImportBatch).where(ImportBatch.id == batch_id, ImportBatch.created_by == user_id)
        )
    ).scalar_one_or_none()
    if batch is None:
        raise not_found("imports.not_found")

    counts = {}
    for key, model in (
        ("wallet_deleted", WalletLedger),
        ("ads_deleted", AdDailyPerformance),
        ("bank_deleted", BankTransaction),
        ("sales_deleted", SalesOrder),
    ):
        result = await db.execute(
            delete(model)
            .where(model.import_batch_id == batch_id, model.created_by == user_id)
            .execution_options(synchronize_session=False)
        )
        counts[key] = result.rowcount or 0

    rolled_back_note = f"Rolled back at {format_bangkok(utc_now())}"
    batch.status = "rolled_back"
    batch.notes = f"{batch.notes} | {rolled_back_note}" if batch.notes else rolled_back_note
    await db.commit()

    logger.info(f"Rolled back import batch {batch_id}: {counts}")
    return {"batch_id": batch_id, **counts}
