"""Request dependencies: database session, caller identity and locale."""
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind
from backoffice.core.messages import normalize_locale
from backoffice.db.session import SessionLocal
from backoffice.models.user_role import UserRole


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Caller identity as forwarded by the authenticating gateway (X-User-Id).
    """
    if not x_user_id or not x_user_id.strip():
        raise ActionError(ErrorKind.AUTH, "auth.unauthorized")
    return x_user_id.strip()


def get_locale(accept_language: Optional[str] = Header(None)) -> str:
    return normalize_locale(accept_language, settings.DEFAULT_LOCALE)


async def is_admin(db: AsyncSession, user_id: str) -> bool:
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == settings.ADMIN_ROLE)
    )
    return result.first() is not None


async def require_admin(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> str:
    if not await is_admin(db, user_id):
        raise ActionError(ErrorKind.FORBIDDEN, "auth.admin_only")
    return user_id
