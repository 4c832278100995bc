"""
Expense model.

Expenses start as DRAFT (planned) and are confirmed as PAID. Once paid, the
amount, category and date are locked.
"""

from sqlalchemy import Column, Date, DateTime, Numeric, String, Text, Index

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

EXPENSE_CATEGORIES = ("Advertising", "COGS", "Operating", "Tax")
EXPENSE_STATUSES = ("DRAFT", "PAID")


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        Index("ix_expenses_owner_date", "created_by", "expense_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    expense_date = Column(Date, nullable=False)
    category = Column(String(20), nullable=False, comment="Advertising / COGS / Operating / Tax")
    subcategory = Column(String(100))
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(String(500), nullable=False, default="รายจ่ายทั่วไป")
    vendor = Column(String(200))
    notes = Column(Text)

    expense_status = Column(String(10), nullable=False, default="DRAFT")
    planned_date = Column(Date)
    paid_date = Column(Date)
    source = Column(String(20), nullable=False, default="manual", comment="manual / imported")

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Expense {self.expense_date} {self.category} {self.amount}>"

    @property
    def is_paid(self) -> bool:
        return self.expense_status == "PAID"
