"""
Inventory items, receipt layers, FIFO COGS allocation and SKU mappings.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import duplicate, not_found, validation_error
from backoffice.lib.bangkok_time import day_bounds_utc, format_bangkok, to_utc_naive
from backoffice.lib.money import ZERO, as_float, round2, to_decimal
from backoffice.models.inventory import (
    InventoryCogsAllocation,
    InventoryItem,
    InventoryReceiptLayer,
    InventorySkuMapping,
)
from backoffice.schemas.inventory import CogsAllocate, InventoryItemUpsert, SkuMappingUpsert, StockIn

logger = logging.getLogger(__name__)


def _qty(value) -> Decimal:
    return to_decimal(value)


def build_item_response(item: InventoryItem, on_hand: Optional[Decimal] = None) -> dict:
    data = {
        "id": item.id,
        "sku_internal": item.sku_internal,
        "product_name": item.product_name,
        "base_cost_per_unit": as_float(item.base_cost_per_unit),
        "is_bundle": item.is_bundle,
    }
    if on_hand is not None:
        data["on_hand"] = as_float(on_hand)
    return data


def build_layer_response(layer: InventoryReceiptLayer) -> dict:
    return {
        "id": layer.id,
        "sku_internal": layer.sku_internal,
        "received_at": format_bangkok(layer.received_at),
        "qty_received": as_float(layer.qty_received),
        "qty_remaining": as_float(layer.qty_remaining),
        "unit_cost": as_float(layer.unit_cost),
        "ref_type": layer.ref_type,
        "ref_id": layer.ref_id,
        "is_voided": layer.is_voided,
    }


def build_allocation_response(allocation: InventoryCogsAllocation) -> dict:
    return {
        "id": allocation.id,
        "order_id": allocation.order_id,
        "sku_internal": allocation.sku_internal,
        "shipped_at": format_bangkok(allocation.shipped_at),
        "method": allocation.method,
        "qty": as_float(allocation.qty),
        "unit_cost_used": as_float(allocation.unit_cost_used),
        "amount": as_float(allocation.amount),
        "layer_id": allocation.layer_id,
        "is_reversal": allocation.is_reversal,
    }


async def get_item(db: AsyncSession, user_id: str, sku_internal: str) -> Optional[InventoryItem]:
    result = await db.execute(
        select(InventoryItem).where(
            InventoryItem.created_by == user_id, InventoryItem.sku_internal == sku_internal
        )
    )
    return result.scalar_one_or_none()


async def _on_hand_by_sku(db: AsyncSession, user_id: str) -> dict:
    result = await db.execute(
        select(InventoryReceiptLayer.sku_internal, func.sum(InventoryReceiptLayer.qty_remaining))
        .where(InventoryReceiptLayer.created_by == user_id, InventoryReceiptLayer.is_voided.is_(False))
        .group_by(InventoryReceiptLayer.sku_internal)
    )
    return {sku: to_decimal(total) for sku, total in result.all()}


async def list_items(db: AsyncSession, user_id: str) -> List[dict]:
    result = await db.execute(
        select(InventoryItem).where(InventoryItem.created_by == user_id).order_by(InventoryItem.sku_internal)
    )
    on_hand = await _on_hand_by_sku(db, user_id)
    return [build_item_response(item, on_hand.get(item.sku_internal, ZERO)) for item in result.scalars().all()]


async def upsert_item(db: AsyncSession, user_id: str, item_in: InventoryItemUpsert) -> dict:
    sku = item_in.sku_internal.strip()
    item = await get_item(db, user_id, sku)
    if item is None:
        item = InventoryItem(created_by=user_id, sku_internal=sku)
        db.add(item)
    item.product_name = item_in.product_name.strip()
    item.base_cost_per_unit = round2(item_in.base_cost_per_unit)
    item.is_bundle = item_in.is_bundle
    await db.commit()
    await db.refresh(item)
    return build_item_response(item)


async def get_on_hand(db: AsyncSession, user_id: str, sku_internal: str) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(InventoryReceiptLayer.qty_remaining), 0)).where(
            InventoryReceiptLayer.created_by == user_id,
            InventoryReceiptLayer.sku_internal == sku_internal,
            InventoryReceiptLayer.is_voided.is_(False),
        )
    )
    return to_decimal(result.scalar())


async def stock_in(db: AsyncSession, user_id: str, stock_in_data: StockIn) -> dict:
    """Receive stock as a new FIFO layer, stamped at Bangkok midnight of the receipt date."""
    qty = _qty(stock_in_data.qty)
    if qty <= 0:
        raise validation_error("inventory.qty_positive")

    sku = stock_in_data.sku_internal.strip()
    if await get_item(db, user_id, sku) is None:
        raise not_found("inventory.item_not_found", sku=sku)

    received_at, _ = day_bounds_utc(stock_in_data.received_date)
    layer = InventoryReceiptLayer(
        created_by=user_id,
        sku_internal=sku,
        received_at=received_at,
        qty_received=qty,
        qty_remaining=qty,
        unit_cost=to_decimal(stock_in_data.unit_cost),
        ref_type=stock_in_data.ref_type,
        ref_id=stock_in_data.ref_id or None,
    )
    db.add(layer)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate("inventory.duplicate_ref", ref_type=stock_in_data.ref_type, ref_id=stock_in_data.ref_id)
    await db.refresh(layer)

    logger.info(f"Stock in {sku}: {qty} @ {stock_in_data.unit_cost} ({stock_in_data.ref_type})")
    return build_layer_response(layer)


async def allocate_cogs_fifo(db: AsyncSession, user_id: str, data: CogsAllocate) -> dict:
    """
    Consume the oldest layers for a shipped order line.

    Nothing is written when stock is short. An order/SKU that already carries
    non-reversal allocations is left as is.
    """
    qty = _qty(data.qty)
    if qty <= 0:
        raise validation_error("inventory.qty_positive")

    existing = await db.execute(
        select(InventoryCogsAllocation).where(
            InventoryCogsAllocation.created_by == user_id,
            InventoryCogsAllocation.order_id == data.order_id,
            InventoryCogsAllocation.sku_internal == data.sku_internal,
            InventoryCogsAllocation.is_reversal.is_(False),
        )
    )
    existing_allocations = existing.scalars().all()
    if existing_allocations:
        logger.info(f"COGS already allocated for order {data.order_id} / {data.sku_internal}")
        return {
            "skipped": True,
            "allocations": [build_allocation_response(a) for a in existing_allocations],
            "total_amount": as_float(round2(sum((to_decimal(a.amount) for a in existing_allocations), ZERO))),
        }

    layers_result = await db.execute(
        select(InventoryReceiptLayer)
        .where(
            InventoryReceiptLayer.created_by == user_id,
            InventoryReceiptLayer.sku_internal == data.sku_internal,
            InventoryReceiptLayer.is_voided.is_(False),
            InventoryReceiptLayer.qty_remaining > 0,
        )
        .order_by(InventoryReceiptLayer.received_at, InventoryReceiptLayer.created_at)
        .with_for_update()
    )
    layers = layers_result.scalars().all()

    available = sum((_qty(layer.qty_remaining) for layer in layers), ZERO)
    if available < qty:
        raise validation_error(
            "inventory.insufficient_stock",
            sku=data.sku_internal,
            needed=format(qty.normalize(), "f"),
            available=format(available.normalize(), "f"),
        )

    shipped_at = to_utc_naive(data.shipped_at)
    allocations = []
    remaining = qty
    for layer in layers:
        if remaining <= 0:
            break
        take = min(remaining, _qty(layer.qty_remaining))
        unit_cost = to_decimal(layer.unit_cost)
        allocation = InventoryCogsAllocation(
            created_by=user_id,
            order_id=data.order_id,
            sku_internal=data.sku_internal,
            shipped_at=shipped_at,
            method="FIFO",
            qty=take,
            unit_cost_used=unit_cost,
            amount=round2(take * unit_cost),
            layer_id=layer.id,
            is_reversal=False,
        )
        db.add(allocation)
        allocations.append(allocation)
        layer.qty_remaining = _qty(layer.qty_remaining) - take
        remaining -= take

    await db.commit()
    total = round2(sum((to_decimal(a.amount) for a in allocations), ZERO))
    logger.info(f"Allocated COGS for order {data.order_id} / {data.sku_internal}: {qty} units, {total}")
    return {
        "skipped": False,
        "allocations": [build_allocation_response(a) for a in allocations],
        "total_amount": as_float(total),
    }


def build_mapping_response(mapping: InventorySkuMapping) -> dict:
    return {
        "id": mapping.id,
        "channel": mapping.channel,
        "marketplace_sku": mapping.marketplace_sku,
        "sku_internal": mapping.sku_internal,
    }


async def list_sku_mappings(db: AsyncSession, user_id: str, channel: Optional[str] = None) -> List[dict]:
    query = select(InventorySkuMapping).where(InventorySkuMapping.created_by == user_id)
    if channel:
        query = query.where(InventorySkuMapping.channel == channel)
    result = await db.execute(query.order_by(InventorySkuMapping.channel, InventorySkuMapping.marketplace_sku))
    return [build_mapping_response(m) for m in result.scalars().all()]


async def upsert_sku_mapping(db: AsyncSession, user_id: str, mapping_in: SkuMappingUpsert) -> dict:
    channel = (mapping_in.channel or "").strip().lower()
    marketplace_sku = (mapping_in.marketplace_sku or "").strip()
    sku_internal = (mapping_in.sku_internal or "").strip()
    if not (channel and marketplace_sku and sku_internal):
        raise validation_error("inventory.mapping_fields_required")

    if await get_item(db, user_id, sku_internal) is None:
        raise not_found("inventory.item_not_found", sku=sku_internal)

    mapping = (
        await db.execute(
            select(InventorySkuMapping).where(
                InventorySkuMapping.created_by == user_id,
                InventorySkuMapping.channel == channel,
                InventorySkuMapping.marketplace_sku == marketplace_sku,
            )
        )
    ).scalar_one_or_none()
    if mapping is None:
        mapping = InventorySkuMapping(created_by=user_id, channel=channel, marketplace_sku=marketplace_sku)
        db.add(mapping)
    mapping.sku_internal = sku_internal
    await db.commit()
    await db.refresh(mapping)
    return build_mapping_response(mapping)


async def delete_sku_mapping(db: AsyncSession, user_id: str, mapping_id: str) -> dict:
    mapping = (
        await db.execute(
            select(InventorySkuMapping).where(
                InventorySkuMapping.id == mapping_id, InventorySkuMapping.created_by == user_id
            )
        )
    ).scalar_one_or_none()
    if mapping is None:
        raise not_found("inventory.mapping_not_found")
    await db.delete(mapping)
    await db.commit()
    return {"id": mapping_id}
