"""
Sales order lines imported from the marketplaces.

One row per order line; `order_id` is the platform order number and repeats
across the lines of a multi-SKU order.
"""

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Index, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

SALES_STATUSES = ("pending", "completed", "cancelled")


class SalesOrder(Base):
    __tablename__ = "sales_orders"
    __table_args__ = (
        Index("ix_sales_orders_owner_order_date", "created_by", "order_date"),
        Index("ix_sales_orders_owner_shipped_at", "created_by", "shipped_at"),
        # manually keyed lines carry no hash; NULLs never collide
        UniqueConstraint("created_by", "order_line_hash", name="uq_sales_order_line_hash"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    order_id = Column(String(100), nullable=False, index=True)
    external_order_id = Column(String(100), index=True)
    tracking_number = Column(String(100), index=True)
    source_platform = Column(String(30), comment="tiktok_shop / shopee / lazada")
    marketplace = Column(String(30))

    # internal status (pending / completed / cancelled), normalized fulfilment
    # group (pending, shipped, delivered, completed, cancelled) and the raw text
    status = Column(String(50), nullable=False, default="pending")
    status_group = Column(String(30))
    platform_status = Column(String(100))

    order_date = Column(DateTime, nullable=False)
    paid_at = Column(DateTime)
    shipped_at = Column(DateTime)
    delivered_at = Column(DateTime)

    sku = Column(String(100), comment="marketplace SKU (variant id)")
    seller_sku = Column(String(100))
    product_name = Column(String(255))
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    order_line_hash = Column(String(64))
    import_batch_id = Column(String(36), index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<SalesOrder {self.order_id} {self.seller_sku} x{self.quantity}>"

    @property
    def is_cancelled(self) -> bool:
        return (self.status or "").lower() == "cancelled"

    @property
    def display_order_id(self) -> str:
        return self.external_order_id or self.order_id
