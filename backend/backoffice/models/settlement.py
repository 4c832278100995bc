"""
Marketplace settlements and the forecast (unsettled) rows they close.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class SettlementTransaction(Base):
    __tablename__ = "settlement_transactions"
    __table_args__ = (
        UniqueConstraint("marketplace", "txn_id", "created_by", name="uq_settlement_marketplace_txn"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    marketplace = Column(String(30), nullable=False)
    txn_id = Column(String(100), nullable=False)
    order_id = Column(String(100), index=True)
    type = Column(String(50))
    settled_time = Column(DateTime)
    settlement_amount = Column(Numeric(14, 2), nullable=False, default=0)
    gross_revenue = Column(Numeric(14, 2), default=0)
    fees_total = Column(Numeric(14, 2), default=0)
    import_batch_id = Column(String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<SettlementTransaction {self.marketplace}:{self.txn_id} {self.settlement_amount}>"


class UnsettledTransaction(Base):
    """Forecast of a payout that has not been settled yet."""
    __tablename__ = "unsettled_transactions"
    __table_args__ = (
        UniqueConstraint("marketplace", "txn_id", name="uq_unsettled_marketplace_txn"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    marketplace = Column(String(30), nullable=False)
    txn_id = Column(String(100), nullable=False)
    related_order_id = Column(String(100))
    estimated_settle_time = Column(DateTime)
    estimated_settlement_amount = Column(Numeric(14, 2), default=0)
    # unsettled / settled / dropped
    status = Column(String(20), nullable=False, default="unsettled")
    settled_at = Column(DateTime)
    import_batch_id = Column(String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<UnsettledTransaction {self.marketplace}:{self.txn_id} {self.status}>"

    @property
    def match_key(self) -> str:
        return f"{self.marketplace}::{self.txn_id}"
