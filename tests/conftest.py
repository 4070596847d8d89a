import os

# Point the app at throwaway storage before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCAL_MIRROR_PATH"] = ""
os.environ["STORE_URL"] = "http://testserver/store"
os.environ.setdefault("OMDB_API_KEY", "test-key")

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import apps.store.models  # noqa: F401
from config import settings
from database import get_session
from main import app
from apps.core.models import MovieRecord
from apps.store.services import StoreService
from apps.catalog.client import StoreClient
from apps.catalog.context import AppContext
from apps.catalog.local_store import LocalStore
from apps.catalog.services import CatalogService
from factories import offline_transport


@pytest.fixture(autouse=True)
def no_request_delay(monkeypatch):
    monkeypatch.setattr(settings, "OMDB_REQUEST_DELAY", 0)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    """Direct access to the store's data for seeding and assertions."""
    with Session(engine) as session:
        yield StoreService(session)


@pytest.fixture
def store_app(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api(store_app):
    return TestClient(store_app)


@pytest.fixture
def local_store():
    return LocalStore()


@pytest.fixture
def context(local_store):
    return AppContext(local_store=local_store)


@pytest_asyncio.fixture
async def store_client(store_app):
    client = StoreClient(
        base_url="http://testserver/store",
        anon_key="test",
        transport=httpx.ASGITransport(app=store_app),
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def offline_client():
    client = StoreClient(base_url="http://offline/store", anon_key="test", transport=offline_transport())
    yield client
    await client.close()


@pytest.fixture
def catalog(context, store_client):
    return CatalogService(context, store_client)


@pytest.fixture
def offline_catalog(context, offline_client):
    return CatalogService(context, offline_client)


@pytest.fixture
def seed(store):
    def _seed(collection, *movies):
        for m in movies:
            store.save_movie(collection, m.to_wire() if isinstance(m, MovieRecord) else m)
    return _seed
