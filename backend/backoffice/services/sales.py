"""
Sales order import and listing.

An import is one batch: the file hash guards against importing the same file
twice, lines are written chunk by chunk, and the batch is finalized with its
inserted/updated/skipped counts. Lines are keyed by an order line hash so
overlapping exports update instead of duplicating.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind, duplicate, not_found, validation_error
from backoffice.lib.bangkok_time import format_bangkok, range_bounds_utc, utc_now
from backoffice.lib.money import as_float
from backoffice.lib.sales_parser import ParsedSalesFile, SalesFormatError, SalesLine, parse_sales_file
from backoffice.lib.spreadsheet import SpreadsheetError
from backoffice.models.import_batch import ImportBatch
from backoffice.models.sales_order import SALES_STATUSES, SalesOrder
from backoffice.services.import_batches import (
    file_sha256,
    find_batch_by_hash,
    finalize_batch,
    mark_batch_failed,
    start_batch,
)

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


def build_sales_order_response(line: SalesOrder) -> dict:
    return {
        "id": line.id,
        "order_id": line.display_order_id,
        "source_platform": line.source_platform,
        "product_name": line.product_name,
        "sku": line.sku,
        "seller_sku": line.seller_sku,
        "quantity": line.quantity,
        "unit_price": as_float(line.unit_price),
        "total_amount": as_float(line.total_amount),
        "status": line.status,
        "status_group": line.status_group,
        "platform_status": line.platform_status,
        "order_date": format_bangkok(line.order_date),
        "shipped_at": format_bangkok(line.shipped_at) if line.shipped_at else None,
        "tracking_number": line.tracking_number,
        "import_batch_id": line.import_batch_id,
    }


def _parse(content: bytes, filename: str, source_platform: str) -> ParsedSalesFile:
    try:
        parsed = parse_sales_file(content, filename, source_platform)
    except (SalesFormatError, SpreadsheetError) as exc:
        raise validation_error("sales.file_format", detail=str(exc))
    if not parsed.lines:
        raise validation_error("sales.no_valid_rows")
    return parsed


def report_type_for(source_platform: str) -> str:
    return f"sales_{source_platform}"


def preview_sales_import(content: bytes, filename: str, source_platform: str = "tiktok_shop") -> dict:
    parsed = _parse(content, filename, source_platform)
    return {
        "file_name": filename,
        **parsed.summary(),
        "sample_rows": [line.to_dict() for line in parsed.lines[:SAMPLE_ROWS]],
    }


def _apply_line(target: SalesOrder, line: SalesLine, batch_id: str) -> None:
    target.order_id = line.order_id
    target.external_order_id = line.order_id
    target.source_platform = line.source_platform
    target.marketplace = line.source_platform
    target.product_name = line.product_name
    target.sku = line.sku
    target.seller_sku = line.seller_sku
    target.quantity = line.quantity
    target.unit_price = line.unit_price
    target.total_amount = line.total_amount
    target.order_date = line.order_date
    target.status = line.status
    target.status_group = line.status_group
    target.platform_status = line.platform_status
    target.tracking_number = line.tracking_number
    target.paid_at = line.paid_at
    target.shipped_at = line.shipped_at
    target.delivered_at = line.delivered_at
    target.import_batch_id = batch_id


async def _write_chunk(db: AsyncSession, user_id: str, chunk: List[SalesLine], batch_id: str, seen: set):
    """Upsert one chunk by line hash. Returns (inserted, updated, skipped)."""
    hashes = {}
    skipped = 0
    for line in chunk:
        line_hash = line.line_hash(user_id)
        if line_hash in seen:
            skipped += 1
            continue
        seen.add(line_hash)
        hashes[line_hash] = line

    existing = {}
    if hashes:
        result = await db.execute(
            select(SalesOrder).where(
                SalesOrder.created_by == user_id,
                SalesOrder.order_line_hash.in_(list(hashes)),
            )
        )
        existing = {row.order_line_hash: row for row in result.scalars().all()}

    inserted = updated = 0
    for line_hash, line in hashes.items():
        target = existing.get(line_hash)
        if target is None:
            target = SalesOrder(created_by=user_id, order_line_hash=line_hash)
            db.add(target)
            inserted += 1
        else:
            updated += 1
        _apply_line(target, line, batch_id)
    await db.flush()
    return inserted, updated, skipped


async def import_sales_file(
    db: AsyncSession,
    user_id: str,
    content: bytes,
    filename: str,
    *,
    source_platform: str = "tiktok_shop",
) -> dict:
    parsed = _parse(content, filename, source_platform)
    platform = parsed.lines[0].source_platform
    report_type = report_type_for(platform)
    file_hash = file_sha256(content)

    previous = await find_batch_by_hash(db, user_id, file_hash, report_type)
    if previous is not None:
        raise duplicate(
            "sales.already_imported",
            file_name=previous.file_name or filename,
            batch_id=previous.id,
        )
    if await find_batch_by_hash(db, user_id, file_hash, report_type, statuses=("processing",)):
        raise duplicate("sales.import_in_progress")

    dates = parsed.dates
    batch = await start_batch(
        db,
        user_id,
        report_type=report_type,
        file_name=filename,
        file_hash=file_hash,
        marketplace=platform,
        row_count=len(parsed.lines) + len(parsed.errors),
        date_min=dates[0] if dates else None,
        date_max=dates[-1] if dates else None,
        metadata={"import_type": parsed.import_type, "date_basis": "order_date"},
    )
    await db.commit()
    batch_id = batch.id

    chunk_size = max(1, settings.SALES_IMPORT_CHUNK_SIZE)
    total_chunks = (len(parsed.lines) + chunk_size - 1) // chunk_size
    try:
        inserted = updated = skipped = 0
        seen = set()
        for index in range(total_chunks):
            chunk = parsed.lines[index * chunk_size:(index + 1) * chunk_size]
            counts = await _write_chunk(db, user_id, chunk, batch_id, seen)
            inserted += counts[0]
            updated += counts[1]
            skipped += counts[2]
            logger.debug(f"Sales batch {batch_id}: chunk {index + 1}/{total_chunks} written")

        finalize_batch(
            batch,
            inserted=inserted,
            updated=updated,
            skipped=skipped,
            errors=len(parsed.errors),
            notes=(
                f"Imported {inserted} lines, updated {updated}, skipped {skipped} duplicates "
                f"(basis: order_date)"
            ),
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Sales import failed for batch {batch_id}: {e}")
        await mark_batch_failed(db, batch_id, str(e))
        raise ActionError(ErrorKind.BACKEND, "common.backend", detail=str(e)) from e

    logger.info(f"Imported sales file {filename}: +{inserted} ~{updated} skipped {skipped}")
    return {
        "batch_id": batch_id,
        "import_type": parsed.import_type,
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
        "error_count": len(parsed.errors),
        "errors": [e.to_dict() for e in parsed.errors],
        "line_count": len(parsed.lines),
        "total_orders": len(parsed.order_ids),
        "total_revenue": as_float(parsed.total_revenue),
        "date_min": dates[0].isoformat() if dates else None,
        "date_max": dates[-1].isoformat() if dates else None,
    }


async def replace_sales_import(
    db: AsyncSession,
    user_id: str,
    batch_id: str,
    content: bytes,
    filename: str,
    *,
    source_platform: str = "tiktok_shop",
) -> dict:
    """Delete the lines of a previous import of the same file, then import it again."""
    batch = (
        await db.execute(
            select(ImportBatch).where(ImportBatch.id == batch_id, ImportBatch.created_by == user_id)
        )
    ).scalar_one_or_none()
    if batch is None:
        raise not_found("imports.not_found")
    if batch.status != "success" or not (batch.report_type or "").startswith("sales_"):
        raise validation_error("sales.replace_not_allowed")
    if batch.file_hash != file_sha256(content):
        raise validation_error("sales.replace_hash_mismatch")

    result = await db.execute(
        delete(SalesOrder)
        .where(SalesOrder.import_batch_id == batch_id, SalesOrder.created_by == user_id)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    batch.status = "replaced"
    batch.notes = (
        f"Replaced by re-import at {format_bangkok(utc_now())}. "
        f"Original count: {batch.inserted_count or 0}"
    )
    await db.commit()
    logger.info(f"Replaced sales batch {batch_id}: deleted {deleted} lines")

    imported = await import_sales_file(db, user_id, content, filename, source_platform=source_platform)
    return {**imported, "replaced_batch_id": batch_id, "deleted": deleted}


async def list_sales_orders(
    db: AsyncSession,
    user_id: str,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    conditions = [SalesOrder.created_by == user_id]
    if start_date and end_date and start_date > end_date:
        raise validation_error("common.invalid_date_range")
    if start_date:
        conditions.append(SalesOrder.order_date >= range_bounds_utc(start_date, start_date)[0])
    if end_date:
        conditions.append(SalesOrder.order_date <= range_bounds_utc(end_date, end_date)[1])
    if status in SALES_STATUSES:
        conditions.append(SalesOrder.status == status)

    total = (await db.execute(select(func.count(SalesOrder.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(SalesOrder)
        .where(*conditions)
        .order_by(SalesOrder.order_date.desc(), SalesOrder.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "data": [build_sales_order_response(line) for line in result.scalars().all()],
        "total": total,
        "page": page,
        "limit": limit,
    }
