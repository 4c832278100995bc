"""
Returns: order search, return submission, stock/COGS reversal and undo.

A RETURN_RECEIVED return puts the goods back as a RETURN receipt layer
(ref_id = return id) and writes a negative COGS allocation at the weighted
average cost of the order's original allocations. Both inserts run in
SAVEPOINTs guarded by partial unique indexes, so a concurrent double submit
ends as "already done" instead of a duplicate layer.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import ActionError, ErrorKind, not_found, validation_error
from backoffice.core.messages import Notice
from backoffice.lib.bangkok_time import bangkok_today, format_bangkok, range_bounds_utc, utc_now
from backoffice.lib.money import ZERO, as_float, to_decimal
from backoffice.models.inventory import (
    InventoryCogsAllocation,
    InventoryReceiptLayer,
    InventoryReturn,
    InventorySkuMapping,
)
from backoffice.models.sales_order import SalesOrder
from backoffice.schemas.returns import ReturnSubmit, ReturnsQueueFilters
from backoffice.services.result import ActionResult

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
QUEUE_LIMIT = 100
QUEUE_DEFAULT_DAYS = 30
QUEUE_STATUS_GROUPS = ("delivered", "completed")


@dataclass
class ReversalOutcome:
    success: bool
    warning: Optional[str] = None
    already_done: bool = False


def channel_for_platform(source_platform: Optional[str]) -> str:
    platform = (source_platform or "").lower()
    if platform == "shopee":
        return "shopee"
    if platform == "lazada":
        return "lazada"
    return "tiktok"


async def resolve_sku_internal(db: AsyncSession, user_id: str, channel: str, marketplace_sku: str) -> str:
    if marketplace_sku:
        result = await db.execute(
            select(InventorySkuMapping.sku_internal).where(
                InventorySkuMapping.created_by == user_id,
                InventorySkuMapping.channel == channel,
                InventorySkuMapping.marketplace_sku == marketplace_sku,
            )
        )
        sku_internal = result.scalar_one_or_none()
        if sku_internal:
            return sku_internal
    raise validation_error("returns.mapping_missing", channel=channel, sku=marketplace_sku)


async def _returned_qty(db: AsyncSession, user_id: str, line_ids: List[str]) -> Dict[Tuple[str, str], int]:
    """Net returned quantity per (line id, sku): RETURN rows minus their UNDO rows."""
    if not line_ids:
        return {}
    result = await db.execute(
        select(InventoryReturn.order_id, InventoryReturn.sku, InventoryReturn.qty, InventoryReturn.action_type)
        .where(InventoryReturn.created_by == user_id, InventoryReturn.order_id.in_(line_ids))
    )
    returned: Dict[Tuple[str, str], int] = defaultdict(int)
    for order_id, sku, qty, action_type in result.all():
        returned[(order_id, sku)] += -qty if action_type == "UNDO" else qty
    return returned


def _line_response(line: SalesOrder, qty_returned: int) -> dict:
    return {
        "id": line.id,
        "sku": line.sku or "",
        "seller_sku": line.seller_sku,
        "product_name": line.product_name,
        "quantity": line.quantity,
        "qty_returned": qty_returned,
        "unit_price": as_float(line.unit_price),
        "total_amount": as_float(line.total_amount),
    }


def _order_header(line: SalesOrder) -> dict:
    return {
        "id": line.id,
        "order_id": line.order_id,
        "external_order_id": line.external_order_id,
        "tracking_number": line.tracking_number,
        "source_platform": line.source_platform,
        "marketplace": line.marketplace,
        "status_group": line.status_group,
        "shipped_at": format_bangkok(line.shipped_at) if line.shipped_at else None,
        "order_date": format_bangkok(line.order_date) if line.order_date else None,
    }


async def search_orders_for_return(db: AsyncSession, user_id: str, query: str) -> List[dict]:
    normalized = (query or "").strip()
    if not normalized:
        return []

    pattern = f"%{normalized}%"
    result = await db.execute(
        select(SalesOrder)
        .where(
            SalesOrder.created_by == user_id,
            SalesOrder.external_order_id.ilike(pattern) | SalesOrder.tracking_number.ilike(pattern),
        )
        .order_by(SalesOrder.order_date.desc())
        .limit(SEARCH_LIMIT)
    )
    lines = result.scalars().all()
    returned = await _returned_qty(db, user_id, [line.id for line in lines])

    orders: Dict[str, dict] = {}
    for line in lines:
        order = orders.setdefault(line.display_order_id, {**_order_header(line), "line_items": []})
        order["line_items"].append(_line_response(line, returned.get((line.id, line.sku or ""), 0)))
    return list(orders.values())


async def submit_return(db: AsyncSession, user_id: str, data: ReturnSubmit) -> ActionResult:
    if not data.items:
        raise validation_error("returns.no_items")

    line_ids = list(dict.fromkeys(item.line_item_id for item in data.items))
    result = await db.execute(select(SalesOrder).where(SalesOrder.id.in_(line_ids)))
    lines = {line.id: line for line in result.scalars().all()}
    if not lines:
        raise not_found("returns.line_not_found", line_id=", ".join(line_ids))
    if any(line.created_by != user_id for line in lines.values()):
        raise ActionError(ErrorKind.FORBIDDEN, "returns.not_owner")

    returned = await _returned_qty(db, user_id, line_ids)

    sku_internal_by_line: Dict[str, str] = {}
    mapping_errors = []
    for item in data.items:
        line = lines.get(item.line_item_id)
        if line is None:
            continue
        if line.seller_sku:
            sku_internal_by_line[item.line_item_id] = line.seller_sku
            continue
        try:
            sku_internal_by_line[item.line_item_id] = await resolve_sku_internal(
                db, user_id, channel_for_platform(line.source_platform), item.sku
            )
        except ActionError as e:
            mapping_errors.append(Notice("returns.mapping_item", sku=item.sku, reason=Notice(e.code, **e.params)))
    if mapping_errors:
        raise validation_error("returns.mapping_required", details=mapping_errors)

    for item in data.items:
        line = lines.get(item.line_item_id)
        if line is None:
            raise not_found("returns.line_not_found", line_id=item.line_item_id)
        if item.qty <= 0:
            raise validation_error("returns.qty_positive", sku=item.sku)
        already = returned.get((item.line_item_id, item.sku), 0)
        available = line.quantity - already
        if item.qty > available:
            raise validation_error(
                "returns.qty_exceeds",
                qty=item.qty,
                sku=item.sku,
                available=available,
                sold=line.quantity,
                returned=already,
            )
        if item.return_type == "CANCEL_BEFORE_SHIP" and line.shipped_at:
            raise validation_error("returns.cancel_after_ship", sku=item.sku)

    note = (data.note or "").strip() or None
    returned_at = utc_now()
    records = [
        InventoryReturn(
            created_by=user_id,
            order_id=item.line_item_id,
            sku=item.sku,
            sku_internal=sku_internal_by_line.get(item.line_item_id),
            qty=item.qty,
            return_type=item.return_type,
            note=note,
            returned_at=returned_at,
            action_type="RETURN",
        )
        for item in data.items
    ]
    db.add_all(records)
    await db.commit()

    created = [
        (r.id, r.order_id, r.sku_internal or r.sku, r.qty, r.return_type)
        for r in records
    ]
    logger.info(f"Return submitted by {user_id}: {len(created)} items")

    warnings = []
    for return_id, line_id, sku_internal, qty, return_type in created:
        if return_type != "RETURN_RECEIVED":
            continue
        outcome = await process_return_received(db, user_id, return_id, line_id, sku_internal, qty, returned_at)
        if outcome.warning:
            warnings.append(outcome.warning)
            logger.warning(f"Return {return_id} stock reversal: {outcome.warning}")

    return ActionResult(
        data={"return_ids": [c[0] for c in created]},
        warning=" | ".join(warnings) if warnings else None,
    )


async def _weighted_unit_cost(
    db: AsyncSession, user_id: str, order_id: str, sku_internal: str
) -> Tuple[Decimal, str, Optional[str]]:
    result = await db.execute(
        select(InventoryCogsAllocation.qty, InventoryCogsAllocation.amount, InventoryCogsAllocation.method)
        .where(
            InventoryCogsAllocation.created_by == user_id,
            InventoryCogsAllocation.order_id == order_id,
            InventoryCogsAllocation.sku_internal == sku_internal,
            InventoryCogsAllocation.is_reversal.is_(False),
        )
        .order_by(InventoryCogsAllocation.created_at)
    )
    allocations = result.all()
    if not allocations:
        return ZERO, "FIFO", f"No COGS allocations found for order {order_id} SKU {sku_internal}, unit_cost set to 0"

    total_qty = sum((to_decimal(a.qty) for a in allocations), ZERO)
    total_amount = sum((to_decimal(a.amount) for a in allocations), ZERO)
    method = allocations[0].method or "FIFO"
    if total_qty == 0:
        return ZERO, method, f"COGS qty sum=0 for order {order_id} SKU {sku_internal}, unit_cost set to 0"
    return total_amount / total_qty, method, None


async def process_return_received(
    db: AsyncSession,
    user_id: str,
    return_id: str,
    line_id: str,
    sku_internal: str,
    qty: int,
    returned_at: datetime,
) -> ReversalOutcome:
    """Put returned goods back into stock and reverse their COGS. Safe to call repeatedly."""
    existing_layer = (
        await db.execute(
            select(InventoryReceiptLayer.id).where(
                InventoryReceiptLayer.ref_type == "RETURN",
                InventoryReceiptLayer.ref_id == return_id,
                InventoryReceiptLayer.is_voided.is_(False),
            )
        )
    ).first()
    if existing_layer:
        return ReversalOutcome(success=True, already_done=True)

    order_id = (
        await db.execute(select(SalesOrder.order_id).where(SalesOrder.id == line_id))
    ).scalar_one_or_none()
    if order_id is None:
        return ReversalOutcome(success=False, warning=f"sales_order not found for id {line_id}")

    unit_cost, method, warning = await _weighted_unit_cost(db, user_id, order_id, sku_internal)
    qty_dec = Decimal(qty)

    layer = InventoryReceiptLayer(
        created_by=user_id,
        sku_internal=sku_internal,
        received_at=returned_at,
        qty_received=qty_dec,
        qty_remaining=qty_dec,
        unit_cost=unit_cost,
        ref_type="RETURN",
        ref_id=return_id,
        is_voided=False,
    )
    try:
        async with db.begin_nested():
            db.add(layer)
    except IntegrityError:
        await db.commit()
        logger.info(f"Return {return_id} layer created concurrently, skipping")
        return ReversalOutcome(success=True, already_done=True)
    except SQLAlchemyError as e:
        await db.rollback()
        return ReversalOutcome(success=False, warning=str(e))
    layer_id = layer.id

    existing_reversal = (
        await db.execute(
            select(InventoryCogsAllocation.id).where(
                InventoryCogsAllocation.layer_id == layer_id,
                InventoryCogsAllocation.is_reversal.is_(True),
            )
        )
    ).first()
    if not existing_reversal:
        try:
            async with db.begin_nested():
                db.add(
                    InventoryCogsAllocation(
                        created_by=user_id,
                        order_id=order_id,
                        sku_internal=sku_internal,
                        shipped_at=returned_at,
                        method=method,
                        qty=-qty_dec,
                        unit_cost_used=unit_cost,
                        amount=-(qty_dec * unit_cost),
                        layer_id=layer_id,
                        is_reversal=True,
                    )
                )
        except IntegrityError:
            logger.info(f"COGS reversal for layer {layer_id} already exists")
        except SQLAlchemyError as e:
            reversal_warning = f"COGS reversal failed: {e}"
            warning = f"{warning} | {reversal_warning}" if warning else reversal_warning

    await db.commit()
    logger.info(f"Return {return_id}: RETURN layer {layer_id} for {sku_internal} x{qty} @ {unit_cost}")
    return ReversalOutcome(success=True, warning=warning)


async def get_returns_queue(db: AsyncSession, user_id: str, filters: ReturnsQueueFilters) -> List[dict]:
    """Shipped and delivered orders that still have returnable quantity."""
    end = filters.end_date or bangkok_today()
    start = filters.start_date or (end - timedelta(days=QUEUE_DEFAULT_DAYS))
    if start > end:
        raise validation_error("common.invalid_date_range")
    start_utc, end_utc = range_bounds_utc(start, end)

    status_groups = filters.status_groups or list(QUEUE_STATUS_GROUPS)
    result = await db.execute(
        select(SalesOrder)
        .where(
            SalesOrder.created_by == user_id,
            SalesOrder.order_date >= start_utc,
            SalesOrder.order_date <= end_utc,
            SalesOrder.shipped_at.isnot(None),
            SalesOrder.status_group.in_(status_groups),
        )
        .order_by(SalesOrder.shipped_at.desc())
        .limit(QUEUE_LIMIT)
    )
    lines = result.scalars().all()

    returned_by_line: Dict[str, int] = defaultdict(int)
    for (line_id, _sku), qty in (await _returned_qty(db, user_id, [line.id for line in lines])).items():
        returned_by_line[line_id] += qty

    queue: Dict[str, dict] = {}
    for line in lines:
        returned_qty = returned_by_line.get(line.id, 0)
        entry = queue.get(line.display_order_id)
        if entry is None:
            queue[line.display_order_id] = {
                **_order_header(line),
                "sold_qty": line.quantity,
                "returned_qty": returned_qty,
                "remaining_qty": line.quantity - returned_qty,
            }
        else:
            entry["sold_qty"] += line.quantity
            entry["returned_qty"] += returned_qty
            entry["remaining_qty"] += line.quantity - returned_qty
    return [entry for entry in queue.values() if entry["remaining_qty"] > 0]


def _return_response(ret: InventoryReturn, line: Optional[SalesOrder] = None) -> dict:
    return {
        "id": ret.id,
        "order_id": ret.order_id,
        "sku": ret.sku,
        "sku_internal": ret.sku_internal,
        "qty": ret.qty,
        "return_type": ret.return_type,
        "return_type_display": ret.return_type_display,
        "note": ret.note,
        "returned_at": format_bangkok(ret.returned_at),
        "action_type": ret.action_type or "RETURN",
        "reversed_return_id": ret.reversed_return_id,
        "external_order_id": line.external_order_id if line else None,
        "tracking_number": line.tracking_number if line else None,
    }


async def get_recent_returns(db: AsyncSession, user_id: str, limit: int = 20) -> List[dict]:
    result = await db.execute(
        select(InventoryReturn, SalesOrder)
        .outerjoin(SalesOrder, InventoryReturn.order_id == SalesOrder.id)
        .where(InventoryReturn.created_by == user_id)
        .order_by(InventoryReturn.returned_at.desc(), InventoryReturn.created_at.desc())
        .limit(limit)
    )
    return [_return_response(ret, line) for ret, line in result.all()]


async def undo_return(db: AsyncSession, user_id: str, return_id: str, note: Optional[str] = None) -> dict:
    """
    Record an UNDO row for a return.

    For a received return the RETURN layer is voided and its COGS reversal
    removed in the same transaction.
    """
    original = (
        await db.execute(
            select(InventoryReturn).where(InventoryReturn.id == return_id, InventoryReturn.created_by == user_id)
        )
    ).scalar_one_or_none()
    if original is None:
        raise not_found("returns.not_found")
    if original.action_type == "UNDO":
        raise validation_error("returns.undo_of_undo")

    existing_undo = (
        await db.execute(
            select(InventoryReturn.id).where(
                InventoryReturn.reversed_return_id == return_id,
                InventoryReturn.action_type == "UNDO",
            )
        )
    ).first()
    if existing_undo:
        raise validation_error("returns.already_undone")

    undo_note = (note or "").strip() or original.note or "(no note)"
    undo = InventoryReturn(
        created_by=user_id,
        order_id=original.order_id,
        sku=original.sku,
        sku_internal=original.sku_internal,
        qty=original.qty,
        return_type=original.return_type,
        note=f"UNDO: {undo_note}",
        returned_at=utc_now(),
        action_type="UNDO",
        reversed_return_id=original.id,
    )
    db.add(undo)

    layer_ids = []
    if original.return_type == "RETURN_RECEIVED":
        layer_ids = [
            row[0]
            for row in (
                await db.execute(
                    select(InventoryReceiptLayer.id).where(
                        InventoryReceiptLayer.ref_type == "RETURN",
                        InventoryReceiptLayer.ref_id == return_id,
                        InventoryReceiptLayer.is_voided.is_(False),
                    )
                )
            ).all()
        ]
    if layer_ids:
        await db.execute(
            delete(InventoryCogsAllocation)
            .where(InventoryCogsAllocation.layer_id.in_(layer_ids), InventoryCogsAllocation.is_reversal.is_(True))
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(InventoryReceiptLayer)
            .where(InventoryReceiptLayer.id.in_(layer_ids))
            .values(is_voided=True, qty_remaining=0)
            .execution_options(synchronize_session=False)
        )

    await db.commit()
    logger.info(f"Return {return_id} undone by {user_id}, voided layers: {len(layer_ids)}")
    return {"undo_id": undo.id, "reversed_return_id": return_id, "voided_layers": len(layer_ids)}


async def backfill_missing_return_stock(db: AsyncSession, user_id: str) -> dict:
    """Create the missing RETURN layers and COGS reversals for received returns."""
    undone = select(InventoryReturn.reversed_return_id).where(
        InventoryReturn.created_by == user_id,
        InventoryReturn.action_type == "UNDO",
        InventoryReturn.reversed_return_id.isnot(None),
    )
    result = await db.execute(
        select(InventoryReturn, SalesOrder.source_platform)
        .outerjoin(SalesOrder, InventoryReturn.order_id == SalesOrder.id)
        .where(
            InventoryReturn.created_by == user_id,
            InventoryReturn.action_type == "RETURN",
            InventoryReturn.return_type == "RETURN_RECEIVED",
            InventoryReturn.id.notin_(undone),
        )
    )
    candidates = [
        (ret.id, ret.order_id, ret.sku, ret.sku_internal, ret.qty, ret.returned_at, platform)
        for ret, platform in result.all()
    ]
    summary = {"total": len(candidates), "processed": 0, "skipped": 0, "failed": 0, "warnings": []}
    if not candidates:
        return summary

    existing = await db.execute(
        select(InventoryReceiptLayer.ref_id).where(
            InventoryReceiptLayer.ref_type == "RETURN",
            InventoryReceiptLayer.ref_id.in_([c[0] for c in candidates]),
            InventoryReceiptLayer.is_voided.is_(False),
        )
    )
    done = {row[0] for row in existing.all()}

    for return_id, line_id, sku, sku_internal, qty, returned_at, platform in candidates:
        if return_id in done:
            summary["skipped"] += 1
            continue

        if not sku_internal:
            channel = channel_for_platform(platform)
            try:
                sku_internal = await resolve_sku_internal(db, user_id, channel, sku)
            except ActionError as e:
                summary["failed"] += 1
                summary["warnings"].append(f"[{return_id}] {e.message()}")
                continue
            await db.execute(
                update(InventoryReturn)
                .where(InventoryReturn.id == return_id, InventoryReturn.created_by == user_id)
                .values(sku_internal=sku_internal)
                .execution_options(synchronize_session=False)
            )

        outcome = await process_return_received(db, user_id, return_id, line_id, sku_internal, qty, returned_at)
        if not outcome.success:
            summary["failed"] += 1
        elif outcome.already_done:
            summary["skipped"] += 1
        else:
            summary["processed"] += 1
        if outcome.warning:
            summary["warnings"].append(f"[{return_id}] {outcome.warning}")

    await db.commit()
    logger.info(f"Return stock backfill for {user_id}: {summary['processed']} processed, {summary['failed']} failed")
    return summary
