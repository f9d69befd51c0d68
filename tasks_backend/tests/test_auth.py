from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Query

from src.api.auth import create_access_token
from src.api.database import get_db
from src.api.main import app
from src.api.models import User

from .conftest import register


def test_health_check(client) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Backend is running!"}


def test_register_returns_user_and_token_matching_profile(client) -> None:
    data = register(client, "Alice", "alice@example.com")
    assert set(data["user"]) == {"id", "name", "email"}
    assert data["user"]["name"] == "Alice"
    assert data["user"]["email"] == "alice@example.com"

    profile = client.get("/api/auth/profile", headers=data["headers"])
    assert profile.status_code == 200
    assert profile.json() == {"user": data["user"]}


def test_register_stores_only_a_hash(client, db) -> None:
    register(client, "Alice", "alice@example.com", "secret123")
    row = db.query(User).filter(User.email == "alice@example.com").one()
    assert row.password != "secret123"
    assert row.password.startswith("$2")
    assert row.created_at is not None


def test_register_twice_with_same_email_is_rejected(client, db) -> None:
    register(client, "Alice", "alice@example.com")
    resp = client.post(
        "/api/auth/register",
        json={"name": "Other", "email": "alice@example.com", "password": "another1"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "DuplicateEmail"
    assert db.query(User).count() == 1


def test_unique_constraint_catches_registration_race(client, db, monkeypatch) -> None:
    register(client, "Alice", "alice@example.com")

    # Make the pre-insert lookup miss once, as if the other request had not committed yet.
    original_first = Query.first
    state = {"blinded": False}

    def first_missing_once(self):
        if not state["blinded"]:
            state["blinded"] = True
            return None
        return original_first(self)

    monkeypatch.setattr(Query, "first", first_missing_once)

    resp = client.post(
        "/api/auth/register",
        json={"name": "Alice 2", "email": "alice@example.com", "password": "secret123"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "DuplicateEmail"

    monkeypatch.setattr(Query, "first", original_first)
    assert db.query(User).count() == 1


def test_register_validation_reports_each_failed_field(client, db) -> None:
    resp = client.post("/api/auth/register", json={"name": "   ", "email": "not-an-email", "password": "123"})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["kind"] == "ValidationError"
    fields = [f["field"] for f in error["fields"]]
    assert sorted(fields) == ["email", "name", "password"]
    assert db.query(User).count() == 0


def test_register_with_missing_body_is_a_validation_error(client) -> None:
    resp = client.post("/api/auth/register")
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "ValidationError"


def test_login_returns_token_for_own_account(client, alice, bob) -> None:
    resp = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "secret123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"] == bob["user"]

    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {body['token']}"})
    assert profile.json()["user"]["id"] == bob["user"]["id"]
    assert profile.json()["user"]["id"] != alice["user"]["id"]


def test_login_failures_do_not_reveal_account_existence(client, alice) -> None:
    wrong_pw = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope-nope"})
    no_user = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "nope-nope"})
    assert wrong_pw.status_code == no_user.status_code == 400
    assert wrong_pw.json() == no_user.json()
    assert wrong_pw.json()["error"]["kind"] == "InvalidCredentials"


def test_login_validation(client) -> None:
    resp = client.post("/api/auth/login", json={"email": "bad", "password": ""})
    assert resp.status_code == 400
    fields = {f["field"] for f in resp.json()["error"]["fields"]}
    assert fields == {"email", "password"}


def test_profile_requires_bearer_token(client, alice) -> None:
    no_header = client.get("/api/auth/profile")
    assert no_header.status_code == 401
    assert no_header.json()["error"]["kind"] == "Unauthenticated"
    assert no_header.headers["www-authenticate"] == "Bearer"

    wrong_scheme = client.get("/api/auth/profile", headers={"Authorization": f"Basic {alice['token']}"})
    assert wrong_scheme.status_code == 401

    no_scheme = client.get("/api/auth/profile", headers={"Authorization": alice["token"]})
    assert no_scheme.status_code == 401


def test_expired_and_tampered_tokens_never_reach_the_store(client, alice) -> None:
    calls = []

    def spy_get_db():
        calls.append(1)
        yield None

    app.dependency_overrides[get_db] = spy_get_db

    expired = create_access_token(alice["user"]["id"], expires_delta=timedelta(seconds=-1))
    signing_input, signature = alice["token"].rsplit(".", 1)
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    tampered = f"{signing_input}.{flipped}"

    for token in (expired, tampered):
        headers = {"Authorization": f"Bearer {token}"}
        for method, path in (
            ("GET", "/api/auth/profile"),
            ("GET", "/api/tasks"),
            ("POST", "/api/tasks"),
            ("PUT", "/api/tasks/1"),
            ("DELETE", "/api/tasks/1"),
        ):
            resp = client.request(method, path, headers=headers, json={"title": "x"})
            assert resp.status_code == 401, (method, path)
            assert resp.json()["error"]["kind"] == "Unauthenticated"

    assert calls == []


def test_profile_of_deleted_user_is_not_found(client, db, alice) -> None:
    db.query(User).filter(User.id == alice["user"]["id"]).delete()
    db.commit()

    resp = client.get("/api/auth/profile", headers=alice["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == {"kind": "NotFound", "message": "User not found"}


def test_overlong_name_and_email_are_validation_errors(client, db) -> None:
    resp = client.post(
        "/api/auth/register",
        json={"name": "n" * 256, "email": "a" * 60 + "@" + "b" * 200 + ".com", "password": "secret123"},
    )
    assert resp.status_code == 400
    fields = {f["field"] for f in resp.json()["error"]["fields"]}
    assert fields == {"name", "email"}
    assert db.query(User).count() == 0


def test_unexpected_errors_use_the_envelope(client, alice, monkeypatch) -> None:
    def broken_verify(plain, hashed):
        raise ValueError("malformed stored hash")

    monkeypatch.setattr("src.api.main.verify_password", broken_verify)
    # Same app and database override as `client`, but report the 500 instead of raising.
    lenient = TestClient(app, raise_server_exceptions=False)

    resp = lenient.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert resp.status_code == 500
    assert resp.json() == {"error": {"kind": "Error", "message": "Internal server error"}}
    assert "malformed" not in resp.text
