"""
Import batch bookkeeping.

Every file import creates a batch first (status=processing) and finalizes it
as success/failed; rows written by the import point back at the batch so the
import can be rolled back.
"""

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, Text, Index

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now

BATCH_STATUSES = ("processing", "success", "failed", "rolled_back", "replaced")


class ImportBatch(Base):
    __tablename__ = "import_batches"
    __table_args__ = (
        Index("ix_import_batches_owner_hash", "created_by", "file_hash"),
        Index("ix_import_batches_status_created", "status", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    marketplace = Column(String(30))
    report_type = Column(String(50), nullable=False, comment="bank_statement / ads_daily / settlement / unsettled / sales_*")
    file_name = Column(String(255))
    file_hash = Column(String(64))
    status = Column(String(20), nullable=False, default="processing")

    row_count = Column(Integer, nullable=False, default=0)
    inserted_count = Column(Integer, nullable=False, default=0)
    updated_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    notes = Column(Text)
    metadata_json = Column(JSON)
    date_min = Column(Date)
    date_max = Column(Date)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<ImportBatch {self.report_type} {self.file_name} {self.status}>"

    @property
    def status_display(self) -> str:
        status_map = {
            "processing": "กำลังประมวลผล",
            "success": "สำเร็จ",
            "failed": "ล้มเหลว",
            "rolled_back": "ยกเลิกแล้ว",
            "replaced": "ถูกแทนที่",
        }
        return status_map.get(self.status, self.status)
