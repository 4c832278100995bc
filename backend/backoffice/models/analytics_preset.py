from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class AnalyticsPreset(Base):
    """A saved analytics builder definition."""
    __tablename__ = "analytics_presets"
    __table_args__ = (
        UniqueConstraint("created_by", "name", name="uq_analytics_preset_name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    definition = Column(JSON, nullable=False)
    last_used_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<AnalyticsPreset {self.name}>"
