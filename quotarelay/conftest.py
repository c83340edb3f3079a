# quotarelay/conftest.py
import pytest
from fastapi.testclient import TestClient

from quotarelay.core.config import Settings
from quotarelay.core.database import create_db_engine, create_all_tables
from quotarelay.features.entitlements.store import SqlEntitlementStore
from quotarelay.main import create_app
from quotarelay.tests.fakes import FakeEntitlementStore, FakeProvider


@pytest.fixture
def test_settings(tmp_path):
    """Complete configuration; no .env file is read."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'settings.db'}",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test123",
        PUBLIC_BASE_URL="https://app.example.com",
        PLAN_CATALOG_JSON=None,
        FREE_TIER_AUTOPROVISION=True,
        FREE_PLAN_NAME="free",
        FREE_MESSAGE_LIMIT=10,
    )


@pytest.fixture
def fake_store():
    return FakeEntitlementStore()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def sql_engine(tmp_path):
    """
    File-backed SQLite engine with tables created.

    A file (not :memory:) so concurrent tests get one connection per thread.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'quotarelay.db'}")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine):
    return SqlEntitlementStore(sql_engine)


@pytest.fixture
def client(test_settings, fake_store, fake_provider):
    app = create_app(test_settings, store=fake_store, provider=fake_provider)
    with TestClient(app) as c:
        yield c
