"""
Inventory costing models.

Stock is held as receipt layers (FIFO). Shipping an order consumes layers
through COGS allocations; a received return puts a RETURN layer back and
writes a negative (reversal) allocation so COGS is reduced.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Index, UniqueConstraint, text

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

LAYER_REF_TYPES = ("OPENING_BALANCE", "PURCHASE", "ADJUSTMENT", "RETURN")
RETURN_TYPES = ("RETURN_RECEIVED", "REFUND_ONLY", "CANCEL_BEFORE_SHIP")
RETURN_ACTIONS = ("RETURN", "UNDO")


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("created_by", "sku_internal", name="uq_inventory_item_sku"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    sku_internal = Column(String(100), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    base_cost_per_unit = Column(Numeric(14, 2), nullable=False, default=0)
    is_bundle = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<InventoryItem {self.sku_internal}>"


class InventorySkuMapping(Base):
    """Marketplace SKU -> internal SKU, per channel."""
    __tablename__ = "inventory_sku_mappings"
    __table_args__ = (
        UniqueConstraint("created_by", "channel", "marketplace_sku", name="uq_sku_mapping_channel_sku"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    channel = Column(String(20), nullable=False, comment="shopee / lazada / tiktok")
    marketplace_sku = Column(String(100), nullable=False)
    sku_internal = Column(String(100), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<InventorySkuMapping {self.channel}:{self.marketplace_sku} -> {self.sku_internal}>"


class InventoryReceiptLayer(Base):
    __tablename__ = "inventory_receipt_layers"
    __table_args__ = (
        # at most one live layer per source document (e.g. one RETURN layer per return row)
        Index(
            "uq_receipt_layer_ref",
            "ref_type",
            "ref_id",
            unique=True,
            sqlite_where=text("is_voided = 0 AND ref_id IS NOT NULL"),
            postgresql_where=text("is_voided = false AND ref_id IS NOT NULL"),
        ),
        Index("ix_receipt_layers_sku_received", "created_by", "sku_internal", "received_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    sku_internal = Column(String(100), nullable=False)
    received_at = Column(DateTime, nullable=False)
    qty_received = Column(Numeric(12, 2), nullable=False)
    qty_remaining = Column(Numeric(12, 2), nullable=False)
    unit_cost = Column(Numeric(14, 4), nullable=False, default=0)
    ref_type = Column(String(20), nullable=False)
    ref_id = Column(String(36))
    is_voided = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<InventoryReceiptLayer {self.sku_internal} {self.ref_type} {self.qty_remaining}/{self.qty_received}>"


class InventoryCogsAllocation(Base):
    __tablename__ = "inventory_cogs_allocations"
    __table_args__ = (
        # a layer is reversed at most once
        Index(
            "uq_cogs_reversal_layer",
            "layer_id",
            unique=True,
            sqlite_where=text("is_reversal = 1"),
            postgresql_where=text("is_reversal = true"),
        ),
        Index("ix_cogs_alloc_order_sku", "created_by", "order_id", "sku_internal"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    order_id = Column(String(100), nullable=False)
    sku_internal = Column(String(100), nullable=False)
    shipped_at = Column(DateTime, nullable=False)
    method = Column(String(10), nullable=False, default="FIFO")
    qty = Column(Numeric(12, 2), nullable=False)
    unit_cost_used = Column(Numeric(14, 4), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    layer_id = Column(String(36), ForeignKey("inventory_receipt_layers.id", ondelete="SET NULL"))
    is_reversal = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        kind = "reversal" if self.is_reversal else self.method
        return f"<InventoryCogsAllocation {self.order_id} {self.sku_internal} {self.qty} ({kind})>"


class InventoryReturn(Base):
    """
    A return (or the undo of one) against a sales order line.

    Rows are append-only: undoing a return inserts an UNDO row pointing at the
    original through reversed_return_id.
    """
    __tablename__ = "inventory_returns"
    __table_args__ = (
        Index("ix_inventory_returns_order_sku", "order_id", "sku"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    order_id = Column(String(36), ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, comment="sales_orders.id (line)")
    sku = Column(String(100), nullable=False)
    sku_internal = Column(String(100))
    qty = Column(Integer, nullable=False)
    return_type = Column(String(30), nullable=False)
    note = Column(Text)
    returned_at = Column(DateTime, nullable=False, default=utc_now)
    action_type = Column(String(10), nullable=False, default="RETURN")
    reversed_return_id = Column(String(36), ForeignKey("inventory_returns.id"), index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<InventoryReturn {self.action_type} {self.sku} x{self.qty}>"

    @property
    def return_type_display(self) -> str:
        type_map = {
            "RETURN_RECEIVED": "รับของคืน",
            "REFUND_ONLY": "คืนเงินอย่างเดียว",
            "CANCEL_BEFORE_SHIP": "ยกเลิกก่อนส่ง",
        }
        return type_map.get(self.return_type, self.return_type)
