from datetime import date, datetime

import pytest

from backoffice.core.errors import ActionError, ErrorKind
from backoffice.schemas.inventory import CogsAllocate, InventoryItemUpsert, SkuMappingUpsert, StockIn
from backoffice.services import inventory as inventory_service

from conftest import USER, add_item


async def _receive(db, day, qty, unit_cost, ref_id=None):
    return await inventory_service.stock_in(
        db,
        USER,
        StockIn(sku_internal="SKU-A", qty=qty, unit_cost=unit_cost, received_date=day, ref_id=ref_id),
    )


async def test_stock_in_stamps_bangkok_midnight(db):
    await add_item(db)
    layer = await _receive(db, date(2026, 3, 1), 10, 5)

    assert layer["received_at"] == "2026-03-01 00:00:00"
    assert layer["qty_remaining"] == 10.0
    assert layer["ref_type"] == "PURCHASE"


async def test_stock_in_needs_known_item_and_positive_qty(db):
    with pytest.raises(ActionError) as exc_info:
        await _receive(db, date(2026, 3, 1), 10, 5)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND
    assert exc_info.value.code == "inventory.item_not_found"

    await add_item(db)
    with pytest.raises(ActionError) as exc_info:
        await _receive(db, date(2026, 3, 1), 0, 5)
    assert exc_info.value.code == "inventory.qty_positive"


async def test_stock_in_reference_is_unique(db):
    await add_item(db)
    await _receive(db, date(2026, 3, 1), 10, 5, ref_id="PO-1")
    with pytest.raises(ActionError) as exc_info:
        await _receive(db, date(2026, 3, 2), 10, 5, ref_id="PO-1")
    assert exc_info.value.kind == ErrorKind.DUPLICATE


async def test_fifo_consumes_oldest_layers_first(db):
    await add_item(db)
    await _receive(db, date(2026, 3, 2), 10, 7)
    await _receive(db, date(2026, 3, 1), 10, 5)

    shipped = datetime(2026, 3, 3, 2, 0)
    result = await inventory_service.allocate_cogs_fifo(
        db, USER, CogsAllocate(order_id="ORD-1", sku_internal="SKU-A", qty=15, shipped_at=shipped)
    )

    assert result["skipped"] is False
    assert [(a["qty"], a["unit_cost_used"]) for a in result["allocations"]] == [(10.0, 5.0), (5.0, 7.0)]
    assert result["total_amount"] == 85.0
    assert await inventory_service.get_on_hand(db, USER, "SKU-A") == 5

    again = await inventory_service.allocate_cogs_fifo(
        db, USER, CogsAllocate(order_id="ORD-1", sku_internal="SKU-A", qty=15, shipped_at=shipped)
    )
    assert again["skipped"] is True
    assert again["total_amount"] == 85.0
    assert await inventory_service.get_on_hand(db, USER, "SKU-A") == 5


async def test_short_stock_writes_nothing(db):
    await add_item(db)
    await _receive(db, date(2026, 3, 1), 4, 5)

    with pytest.raises(ActionError) as exc_info:
        await inventory_service.allocate_cogs_fifo(
            db, USER, CogsAllocate(order_id="ORD-2", sku_internal="SKU-A", qty=5, shipped_at=datetime(2026, 3, 2))
        )
    assert exc_info.value.code == "inventory.insufficient_stock"
    assert exc_info.value.params["needed"] == "5"
    assert exc_info.value.params["available"] == "4"
    assert await inventory_service.get_on_hand(db, USER, "SKU-A") == 4


async def test_items_list_on_hand(db):
    await inventory_service.upsert_item(
        db, USER, InventoryItemUpsert(sku_internal="SKU-A", product_name="Serum", base_cost_per_unit=12.5)
    )
    await _receive(db, date(2026, 3, 1), 3, 12.5)
    updated = await inventory_service.upsert_item(
        db, USER, InventoryItemUpsert(sku_internal="SKU-A", product_name="Serum 30ml", base_cost_per_unit=13)
    )
    assert updated["product_name"] == "Serum 30ml"

    items = await inventory_service.list_items(db, USER)
    assert len(items) == 1
    assert items[0]["on_hand"] == 3.0
    assert items[0]["base_cost_per_unit"] == 13.0


async def test_sku_mapping_upsert_and_delete(db):
    await add_item(db)
    with pytest.raises(ActionError) as exc_info:
        await inventory_service.upsert_sku_mapping(db, USER, SkuMappingUpsert(channel="shopee", marketplace_sku="SP-1"))
    assert exc_info.value.code == "inventory.mapping_fields_required"

    created = await inventory_service.upsert_sku_mapping(
        db, USER, SkuMappingUpsert(channel=" Shopee ", marketplace_sku="SP-1", sku_internal="SKU-A")
    )
    assert created["channel"] == "shopee"

    await add_item(db, sku="SKU-B")
    remapped = await inventory_service.upsert_sku_mapping(
        db, USER, SkuMappingUpsert(channel="shopee", marketplace_sku="SP-1", sku_internal="SKU-B")
    )
    assert remapped["id"] == created["id"]
    assert remapped["sku_internal"] == "SKU-B"

    await inventory_service.delete_sku_mapping(db, USER, created["id"])
    assert await inventory_service.list_sku_mappings(db, USER, channel="shopee") == []
