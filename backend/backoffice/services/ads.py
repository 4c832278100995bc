"""
Ads performance: summary, daily rows and report import.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind, duplicate, not_found, validation_error
from backoffice.lib.ads_report_parser import ParsedAdsReport, ReportFormatError, parse_ads_report
from backoffice.lib.money import as_float, round2, safe_ratio, sum_amounts
from backoffice.lib.spreadsheet import SpreadsheetError
from backoffice.models.ads import CAMPAIGN_TYPES, AdDailyPerformance
from backoffice.models.wallet import Wallet, WalletLedger
from backoffice.services.import_batches import (
    file_sha256,
    find_batch_by_hash,
    finalize_batch,
    mark_batch_failed,
    start_batch,
)

logger = logging.getLogger(__name__)


def build_ads_row(row: AdDailyPerformance) -> dict:
    return {
        "id": row.id,
        "marketplace": row.marketplace,
        "ad_date": row.ad_date.isoformat(),
        "campaign_type": row.campaign_type,
        "campaign_name": row.campaign_name,
        "campaign_id": row.campaign_id,
        "spend": as_float(row.spend),
        "revenue": as_float(row.revenue),
        "orders": row.orders or 0,
        "impressions": row.impressions or 0,
        "clicks": row.clicks or 0,
        "roas": as_float(round2(safe_ratio(row.revenue, row.spend))),
        "import_batch_id": row.import_batch_id,
    }


def _range_conditions(user_id: str, start: date, end: date):
    if start > end:
        raise validation_error("common.invalid_date_range")
    return [
        AdDailyPerformance.created_by == user_id,
        AdDailyPerformance.ad_date >= start,
        AdDailyPerformance.ad_date <= end,
    ]


async def get_ads_summary(db: AsyncSession, user_id: str, start: date, end: date) -> dict:
    result = await db.execute(
        select(AdDailyPerformance.spend, AdDailyPerformance.revenue, AdDailyPerformance.orders).where(
            *_range_conditions(user_id, start, end)
        )
    )
    rows = result.all()
    total_spend = sum_amounts(r.spend for r in rows)
    total_revenue = sum_amounts(r.revenue for r in rows)
    total_orders = sum(r.orders or 0 for r in rows)
    return {
        "total_spend": as_float(total_spend),
        "total_revenue": as_float(total_revenue),
        "total_orders": total_orders,
        "blended_roi": as_float(round2(safe_ratio(total_revenue, total_spend))),
    }


async def get_ads_performance(db: AsyncSession, user_id: str, start: date, end: date) -> list:
    """All rows in range, newest first, fetched page by page."""
    conditions = _range_conditions(user_id, start, end)
    rows = []
    offset = 0
    while True:
        result = await db.execute(
            select(AdDailyPerformance)
            .where(*conditions)
            .order_by(AdDailyPerformance.ad_date.desc(), AdDailyPerformance.id)
            .offset(offset)
            .limit(settings.PAGE_SIZE)
        )
        page = result.scalars().all()
        rows.extend(build_ads_row(r) for r in page)
        if len(page) < settings.PAGE_SIZE:
            break
        offset += settings.PAGE_SIZE
    return rows


def _parse(content: bytes, filename: str) -> ParsedAdsReport:
    try:
        return parse_ads_report(content, filename)
    except (ReportFormatError, SpreadsheetError) as exc:
        raise validation_error("ads.report_format", detail=str(exc))


def preview_ads_import(content: bytes, filename: str) -> dict:
    report = _parse(content, filename)
    return {
        "file_name": filename,
        **report.summary(),
        "rows": [r.to_dict() for r in report.rows],
    }


async def _upsert_ads_row(
    db: AsyncSession, user_id: str, marketplace: str, campaign_type: str, row, batch_id: str
) -> bool:
    """Returns True when a new row was inserted, False when an existing one was updated."""
    key_condition = (
        AdDailyPerformance.campaign_id == row.campaign_id
        if row.campaign_id
        else or_(AdDailyPerformance.campaign_id.is_(None), AdDailyPerformance.campaign_id == "")
    )
    query = select(AdDailyPerformance).where(
        AdDailyPerformance.created_by == user_id,
        AdDailyPerformance.marketplace == marketplace,
        AdDailyPerformance.ad_date == row.ad_date,
        AdDailyPerformance.campaign_type == campaign_type,
        key_condition,
    )
    if not row.campaign_id:
        query = query.where(AdDailyPerformance.campaign_name == row.campaign_name)
    existing = (await db.execute(query)).scalars().first()

    target = existing or AdDailyPerformance(
        created_by=user_id,
        marketplace=marketplace,
        ad_date=row.ad_date,
        campaign_type=campaign_type,
        campaign_id=row.campaign_id,
    )
    target.campaign_name = row.campaign_name
    target.spend = row.spend
    target.revenue = row.revenue
    target.orders = row.orders
    target.impressions = row.impressions
    target.clicks = row.clicks
    target.import_batch_id = batch_id
    if existing is None:
        db.add(target)
        # later rows of the same file must find this one
        await db.flush()
        return True
    return False


async def import_ads_report(
    db: AsyncSession,
    user_id: str,
    content: bytes,
    filename: str,
    *,
    marketplace: str = "tiktok",
    campaign_type: str = "product",
    wallet_id: Optional[str] = None,
) -> dict:
    if campaign_type not in CAMPAIGN_TYPES:
        raise validation_error("ads.report_format", detail=f"campaign_type={campaign_type}")

    wallet = None
    if wallet_id:
        wallet = (
            await db.execute(select(Wallet).where(Wallet.id == wallet_id, Wallet.created_by == user_id))
        ).scalar_one_or_none()
        if wallet is None:
            raise not_found("wallets.not_found")
        if wallet.wallet_type != "ADS":
            raise validation_error("ads.wallet_not_ads")

    report = _parse(content, filename)
    file_hash = file_sha256(content)
    report_type = f"{marketplace}_ads_{campaign_type}"
    if await find_batch_by_hash(db, user_id, file_hash, report_type):
        raise duplicate("ads.already_imported")

    dates = report.dates
    batch = await start_batch(
        db,
        user_id,
        report_type=report_type,
        file_name=filename,
        file_hash=file_hash,
        marketplace=marketplace,
        row_count=len(report.rows) + report.skipped_rows,
        date_min=dates[0] if dates else None,
        date_max=dates[-1] if dates else None,
        metadata={"currency": report.currency, "report_type": report.report_type},
    )
    await db.commit()
    batch_id = batch.id

    try:
        inserted = updated = 0
        for row in report.rows:
            if await _upsert_ads_row(db, user_id, marketplace, campaign_type, row, batch.id):
                inserted += 1
            else:
                updated += 1

        wallet_entries = 0
        if wallet is not None:
            spend_by_day = defaultdict(list)
            for row in report.rows:
                spend_by_day[row.ad_date].append(row.spend)
            label = "Product" if campaign_type == "product" else campaign_type.capitalize()
            for day in sorted(spend_by_day):
                amount = sum_amounts(spend_by_day[day])
                if amount <= 0:
                    continue
                db.add(
                    WalletLedger(
                        created_by=user_id,
                        wallet_id=wallet.id,
                        date=day,
                        entry_type="SPEND",
                        direction="OUT",
                        amount=amount,
                        source="IMPORTED",
                        import_batch_id=batch.id,
                        reference_id=f"ADS:{batch.id}:{day.isoformat()}",
                        note=f"{label} Ads Spend - {day.isoformat()}",
                    )
                )
                wallet_entries += 1

        finalize_batch(
            batch,
            inserted=inserted,
            updated=updated,
            skipped=report.skipped_rows,
            notes=(
                f"Performance: {inserted + updated} records, Wallet: {wallet_entries} entries, "
                f"Total: {report.total_spend} {report.currency}"
            ),
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Ads import failed for batch {batch_id}: {e}")
        await mark_batch_failed(db, batch_id, str(e))
        raise ActionError(ErrorKind.BACKEND, "common.backend", detail=str(e)) from e

    logger.info(f"Imported ads report {filename}: +{inserted} ~{updated}, wallet entries {wallet_entries}")
    return {
        "batch_id": batch.id,
        "inserted": inserted,
        "updated": updated,
        "skipped": report.skipped_rows,
        "wallet_entries": wallet_entries,
        "total_spend": as_float(report.total_spend),
        "total_revenue": as_float(report.total_revenue),
        "total_orders": report.total_orders,
        "days_count": len(dates),
    }
