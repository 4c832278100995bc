"""
CEO commission receipts.

Commission paid to the CEO personally; whatever is transferred to the company
is mirrored as a director loan top-up.
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class CeoCommissionReceipt(Base):
    __tablename__ = "ceo_commission_receipts"
    __table_args__ = (
        UniqueConstraint("created_by", "commission_date", "platform", name="uq_commission_date_platform"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    commission_date = Column(Date, nullable=False, index=True)
    platform = Column(String(100), nullable=False)
    gross_amount = Column(Numeric(14, 2), nullable=False)
    personal_used_amount = Column(Numeric(14, 2), nullable=False, default=0)
    transferred_to_company_amount = Column(Numeric(14, 2), nullable=False, default=0)
    note = Column(Text)
    reference = Column(String(200))

    # a bank deposit can be declared as commission only once
    bank_transaction_id = Column(
        String(36), ForeignKey("bank_transactions.id", ondelete="SET NULL"), unique=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<CeoCommissionReceipt {self.commission_date} {self.platform} {self.gross_amount}>"


class CeoCommissionSource(Base):
    """Bank accounts that receive commission deposits."""
    __tablename__ = "ceo_commission_sources"
    __table_args__ = (
        UniqueConstraint("created_by", "bank_account_id", name="uq_commission_source_account"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)
    bank_account_id = Column(String(36), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
