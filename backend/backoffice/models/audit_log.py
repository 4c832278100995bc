"""
Audit trail for user-visible changes (currently expenses).
"""

from sqlalchemy import JSON, Column, DateTime, String

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_by = Column(String(64), nullable=False, index=True)

    # CREATE / UPDATE / DELETE / CONFIRM_PAID
    action = Column(String(20), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(36), index=True)
    description = Column(String(500))

    old_value = Column(JSON)
    new_value = Column(JSON)

    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"

    @property
    def action_display(self) -> str:
        action_map = {
            "CREATE": "สร้าง",
            "UPDATE": "แก้ไข",
            "DELETE": "ลบ",
            "CONFIRM_PAID": "ยืนยันจ่าย",
        }
        return action_map.get(self.action, self.action)
