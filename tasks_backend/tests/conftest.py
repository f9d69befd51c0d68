# tests/conftest.py

from __future__ import annotations

import os

# Must be in place before src.api.* is imported: settings are read once.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.api.database import get_db, init_db  # noqa: E402
from src.api.main import app  # noqa: E402


@pytest.fixture()
def engine():
    """
    One in-memory SQLite database per test.

    StaticPool keeps a single connection so every session (and the
    threadpool FastAPI runs sync handlers in) sees the same database.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    """
    TestClient wired to the per-test database.

    Not entered as a context manager, so the lifespan hook (which would
    create tables on the module-level engine) does not run.
    """

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def register(client: TestClient, name: str, email: str, password: str = "secret123") -> dict:
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    data = resp.json()
    data["headers"] = {"Authorization": f"Bearer {data['token']}"}
    return data


@pytest.fixture()
def alice(client) -> dict:
    return register(client, "Alice", "alice@example.com")


@pytest.fixture()
def bob(client) -> dict:
    return register(client, "Bob", "bob@example.com")
