"""Pytest fixtures: in-memory SQLite, local object store and a test app."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from ciphervault.server.config import Settings
from ciphervault.server.database import create_db_engine, init_db
from ciphervault.server.main import create_app
from ciphervault.server.models import User
from ciphervault.server.repositories.data_items import DataItemRepo
from ciphervault.server.repositories.objects import LocalObjectStore
from ciphervault.server.services.data_items import DataItemService


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret-key",
        OBJECT_STORE_BACKEND="local",
        OBJECT_STORE_PATH=str(tmp_path / "objects"),
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def object_store(settings) -> LocalObjectStore:
    store = LocalObjectStore(settings.OBJECT_STORE_PATH, prefix=settings.S3_PREFIX)
    store.ensure_bucket()
    return store


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        session.add(User(id="u1", username="user-one", password_hash="x"))
        session.add(User(id="u2", username="user-two", password_hash="x"))
        session.commit()
        yield session


@pytest.fixture
def repo(session) -> DataItemRepo:
    return DataItemRepo(session)


@pytest.fixture
def service(repo, object_store) -> DataItemService:
    return DataItemService(repo, object_store)


@pytest.fixture
def app(settings, engine, object_store):
    return create_app(settings, engine=engine, object_store=object_store)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(client):
    """Register an account and return the Authorization header for it."""

    def _auth_headers(username: str, password: str = "pw1") -> dict:
        resp = client.post("/auth/register", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        resp = client.post("/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _auth_headers
