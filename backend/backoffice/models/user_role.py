from sqlalchemy import Column, DateTime, String, UniqueConstraint

from backoffice.db.base import Base, generate_uuid
from backoffice.lib.bangkok_time import utc_now


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(30), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<UserRole {self.user_id}:{self.role}>"
