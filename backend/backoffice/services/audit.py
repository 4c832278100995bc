from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.audit_log import AuditLog


def create_audit_log(
    db: AsyncSession,
    user_id: str,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    description: Optional[str] = None,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None) -> AuditLog:
    """Add an audit entry to the session; it commits with the change it records."""
    log = AuditLog(
        created_by=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        description=description,
        old_value=old_value,
        new_value=new_value,
    )
    db.add(log)
    return log
