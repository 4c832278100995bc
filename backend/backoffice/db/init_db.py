import asyncio

from backoffice.db.session import engine
from backoffice.db.base import Base

# register every model on Base.metadata
import backoffice.models  # noqa: F401


async def ensure_tables_exist(bind=None) -> None:
    """Create all tables that do not exist yet (called at startup)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


if __name__ == "__main__":
    asyncio.run(ensure_tables_exist())
