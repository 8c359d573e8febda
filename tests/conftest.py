import itertools
import os

# Must be set before anything imports db.database (the module builds its engine at import time).
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core import catalog
from db.database import create_db_and_tables, get_async_session
from db.inventory.adjustment import StockAdjustment
from db.inventory.stock import StockLevel


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}", poolclass=NullPool)
    await create_db_and_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker):
    from main import app

    async def _session_override():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session_override
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_product(session_maker):
    """Creates products in a throwaway session so the returned objects stay detached
    and are not expired by a ledger rollback on the test session."""
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        data = {"name": f"Product {n:02d}", "sku": f"sku-{n:03d}", "price": 10}
        data.update(overrides)
        async with session_maker() as session:
            return await catalog.create_product(session, **data)

    return _make


@pytest.fixture
def make_location(session_maker):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        data = {"name": f"Location {n:02d}"}
        data.update(overrides)
        async with session_maker() as session:
            return await catalog.create_location(session, **data)

    return _make


async def stock_quantity(db, product_id, location_id):
    """Committed quantity for a pair, or None when no row exists."""
    res = await db.execute(
        select(StockLevel.quantity).where(
            StockLevel.product_id == product_id,
            StockLevel.location_id == location_id,
        )
    )
    return res.scalar_one_or_none()


async def adjustments_for(db, product_id, location_id):
    res = await db.execute(
        select(StockAdjustment)
        .where(StockAdjustment.product_id == product_id, StockAdjustment.location_id == location_id)
        .order_by(StockAdjustment.timestamp.asc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())
