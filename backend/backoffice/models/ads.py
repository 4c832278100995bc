"""
Daily ads performance, one row per campaign per day.
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Index

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

CAMPAIGN_TYPES = ("product", "live", "aware")


class AdDailyPerformance(Base):
    __tablename__ = "ad_daily_performance"
    __table_args__ = (
        Index("ix_ad_daily_owner_date", "created_by", "ad_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    marketplace = Column(String(30), nullable=False, default="tiktok")
    ad_date = Column(Date, nullable=False)
    campaign_type = Column(String(20), nullable=False, default="product", comment="product / live / aware")
    campaign_name = Column(String(255))
    campaign_id = Column(String(100))
    spend = Column(Numeric(14, 2), nullable=False, default=0)
    revenue = Column(Numeric(14, 2), nullable=False, default=0)
    orders = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    import_batch_id = Column(String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), index=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<AdDailyPerformance {self.ad_date} {self.campaign_name} {self.spend}>"

    @property
    def campaign_key(self) -> str:
        return self.campaign_id or self.campaign_name or ""
