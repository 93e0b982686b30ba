"""Shared fixtures: an in-memory database per test."""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from pricesync.db.models import Base, Marketplace, Product, Supplier
from pricesync.db.session import build_engine, build_session_factory
from pricesync.db.store import RecordStore


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def make_supplier(store):
    async def _make(name="Supplier", **values):
        return await store.insert(Supplier, {"name": name, **values})

    return _make


@pytest.fixture
def make_marketplace(store):
    async def _make(name="Kaspi", **values):
        return await store.insert(Marketplace, {"name": name, "api_key": "token", **values})

    return _make


@pytest.fixture
def make_product(store):
    async def _make(supplier_article, name="Item", price=None, **values):
        data = {
            "supplier_article": supplier_article,
            "name_supplier": name,
            "current_price": Decimal(str(price)) if price is not None else None,
        }
        data.update(values)
        return await store.insert(Product, data)

    return _make
