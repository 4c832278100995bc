"""
Wallets and their ledger.

A wallet is a money container outside the bank accounts (ads credit, the
director loan account, subscriptions). Every movement is a ledger entry with a
positive amount and a direction.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

WALLET_TYPES = ("ADS", "SUBSCRIPTION", "OTHER", "DIRECTOR_LOAN")
ENTRY_TYPES = ("TOP_UP", "SPEND", "REFUND", "ADJUSTMENT")
DIRECTIONS = ("IN", "OUT")
LEDGER_SOURCES = ("MANUAL", "IMPORTED")


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    wallet_type = Column(String(20), nullable=False, comment="ADS / SUBSCRIPTION / OTHER / DIRECTOR_LOAN")
    currency = Column(String(3), nullable=False, default="THB")
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    entries = relationship("WalletLedger", back_populates="wallet", lazy="noload")

    def __repr__(self):
        return f"<Wallet {self.name} ({self.wallet_type})>"


class WalletLedger(Base):
    """One wallet movement. Amount is always positive; direction carries the sign."""
    __tablename__ = "wallet_ledger"
    __table_args__ = (
        # one ledger entry per external reference (e.g. CEO_COMMISSION:<receipt id>)
        UniqueConstraint("wallet_id", "reference_id", name="uq_wallet_ledger_reference"),
        Index("ix_wallet_ledger_wallet_date", "wallet_id", "date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    wallet_id = Column(String(36), ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    entry_type = Column(String(20), nullable=False)
    direction = Column(String(3), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    source = Column(String(10), nullable=False, default="MANUAL")
    import_batch_id = Column(String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), index=True)
    reference_id = Column(String(200))
    note = Column(Text)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    wallet = relationship("Wallet", back_populates="entries")

    def __repr__(self):
        return f"<WalletLedger {self.date} {self.entry_type} {self.direction} {self.amount}>"

    @property
    def signed_amount(self):
        return self.amount if self.direction == "IN" else -self.amount
