# tests/conftest.py
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from shopledger.core.config import Settings
from shopledger.database import create_all, create_session_factory
from shopledger.main import create_app
from shopledger.services.backend import build_sql_backend
from shopledger.services.fallback_store import FallbackStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "test-password"


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def make_engine(path):
    # Generous busy timeout: the reconciler writes several rows concurrently
    return create_async_engine(sqlite_url(path), connect_args={"timeout": 30})


def create_schema(url: str) -> None:
    """Create tables from a sync fixture (no event loop running yet)."""
    async def _run():
        engine = create_async_engine(url)
        try:
            await create_all(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())


def days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def purchase(item_name="Kurti-A", quantity=10, unit_price=100, supplier="Textile House", **extra):
    data = {
        "type": "purchase",
        "items": [{"item_name": item_name, "quantity": quantity, "unit_price": unit_price}],
        "supplier": {"name": supplier, "contact": "9876543210"},
    }
    data.update(extra)
    return data


def sale(item_name="Kurti-A", quantity=4, unit_price=150, customer="Walk-in", **extra):
    data = {
        "type": "sale",
        "items": [{"item_name": item_name, "quantity": quantity, "unit_price": unit_price}],
        "customer": {"name": customer},
    }
    data.update(extra)
    return data


@pytest.fixture
def settings():
    """In-memory settings: no DATABASE_URL, so the app runs on the fallback store"""
    return Settings(
        DATABASE_URL="",
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """SQLite engine with all tables created, one database file per test."""
    engine = make_engine(tmp_path / "ledger.db")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def sql_backend(session_factory):
    return build_sql_backend(session_factory)


@pytest.fixture
def fallback_store():
    return FallbackStore(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def memory_backend(fallback_store):
    return fallback_store.as_backend()


@pytest.fixture(params=["sql", "memory"])
async def backend(request, tmp_path):
    """
    Both backends behind one fixture. Tests using it form the conformance
    suite: the persistent and the fallback store must behave identically.
    """
    if request.param == "memory":
        yield FallbackStore(ADMIN_EMAIL, ADMIN_PASSWORD).as_backend()
        return

    engine = make_engine(tmp_path / "conformance.db")
    await create_all(engine)
    yield build_sql_backend(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def ledger(backend):
    return backend.ledger


@pytest.fixture
def transaction_store(backend):
    return backend.transactions


@pytest.fixture
def test_client(settings):
    """Provide a test client running on the fallback store"""
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def sql_settings(tmp_path):
    url = sqlite_url(tmp_path / "app.db")
    create_schema(url)
    return Settings(
        DATABASE_URL=url,
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def sql_client(sql_settings):
    """Provide a test client backed by a SQLite persistent store"""
    app = create_app(sql_settings)
    with TestClient(app) as client:
        yield client
