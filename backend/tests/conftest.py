import os

# settings are read at import time
os.environ.setdefault("LOG_DIR", "")
os.environ.setdefault("IMPORT_CLEANUP_ENABLED", "false")
os.environ.setdefault("DATABASE_URI", "sqlite+aiosqlite://")

from datetime import date, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.core.deps import get_db
from backoffice.db.init_db import ensure_tables_exist
from backoffice.db.session import build_engine
from backoffice.main import app
from backoffice.models import InventoryItem, SalesOrder

USER = "user-a"
OTHER_USER = "user-b"


@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await ensure_tables_exist(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": USER, "Accept-Language": "en"}


async def add_order_line(
    db,
    *,
    user_id=USER,
    order_id="ORD-1",
    external_order_id="EXT-1",
    tracking_number="TRK-1",
    seller_sku="SKU-A",
    sku="MKT-A",
    quantity=3,
    total_amount=300,
    status="completed",
    status_group="delivered",
    order_date=datetime(2026, 3, 1, 5, 0),
    shipped_at=datetime(2026, 3, 1, 8, 0),
    source_platform="tiktok_shop",
):
    line = SalesOrder(
        created_by=user_id,
        order_id=order_id,
        external_order_id=external_order_id,
        tracking_number=tracking_number,
        source_platform=source_platform,
        status=status,
        status_group=status_group,
        order_date=order_date,
        shipped_at=shipped_at,
        sku=sku,
        seller_sku=seller_sku,
        product_name="Test product",
        quantity=quantity,
        unit_price=total_amount / quantity if quantity else 0,
        total_amount=total_amount,
    )
    db.add(line)
    await db.commit()
    return line


async def add_item(db, sku="SKU-A", user_id=USER):
    item = InventoryItem(created_by=user_id, sku_internal=sku, product_name=f"Item {sku}", base_cost_per_unit=0)
    db.add(item)
    await db.commit()
    return item


MARCH_1 = date(2026, 3, 1)
