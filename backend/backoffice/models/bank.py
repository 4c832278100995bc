"""
Bank accounts, imported statement lines and balance checkpoints.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Index, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    bank_name = Column(String(100), nullable=False)
    account_number = Column(String(50), nullable=False)
    account_type = Column(String(30), nullable=False, default="savings", comment="savings / current / fixed_deposit")
    currency = Column(String(3), nullable=False, default="THB")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<BankAccount {self.bank_name} {self.account_number}>"

    @property
    def display_name(self) -> str:
        return f"{self.bank_name} - {self.account_number}"


class BankTransaction(Base):
    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("ix_bank_txn_account_date", "bank_account_id", "txn_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    bank_account_id = Column(String(36), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False)
    import_batch_id = Column(String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), index=True)
    txn_date = Column(Date, nullable=False)
    description = Column(Text)
    withdrawal = Column(Numeric(14, 2), nullable=False, default=0)
    deposit = Column(Numeric(14, 2), nullable=False, default=0)
    balance = Column(Numeric(14, 2))
    channel = Column(String(100))
    reference_id = Column(String(200))

    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<BankTransaction {self.txn_date} -{self.withdrawal} +{self.deposit}>"


class BankOpeningBalance(Base):
    """Starting point for expected-balance calculations, one per account."""
    __tablename__ = "bank_opening_balances"
    __table_args__ = (
        UniqueConstraint("created_by", "bank_account_id", name="uq_opening_balance_account"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    bank_account_id = Column(String(36), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False)
    as_of_date = Column(Date, nullable=False)
    opening_balance = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


class BankReportedBalance(Base):
    """Balance as printed by the bank, used to check the expected balance."""
    __tablename__ = "bank_reported_balances"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    bank_account_id = Column(String(36), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    reported_as_of_date = Column(Date, nullable=False)
    reported_balance = Column(Numeric(14, 2), nullable=False)
    note = Column(Text)

    created_at = Column(DateTime, nullable=False, default=utc_now)
