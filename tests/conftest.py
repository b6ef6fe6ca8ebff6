"""
tests/conftest.py -- Shared test fixtures for msgboard integration tests.

This module provides:
  - make_settings(): frozen Settings pointing at an isolated in-memory DB
  - client: TestClient around create_app(settings), lifespan included
  - rate_limited_client: same, with the shared slowapi limiter switched on
  - signup: factory that registers + logs in a user and returns (token, user_id)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
Each client gets a uuid-suffixed name so tests never see each other's rows.

Settings are built explicitly and passed to create_app(), so nothing here
depends on SECRET_KEY or DEBUG being set in the environment.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.models import ROLE_ADMIN
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"


def make_settings(upload_dir: Path, **overrides) -> Settings:
    """Return Settings with an isolated shared-memory DB and rate limits off."""
    values = {
        "secret_key": TEST_SECRET,
        "database_url": f"sqlite:///file:test_board_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        "upload_dir": str(upload_dir),
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path / "uploads")


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient for a freshly built app.

    Entering the context runs the real lifespan, so app.state.user_store and
    app.state.board exist for the duration of the test.
    """
    app = create_app(settings)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def rate_limited_client(settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient with slowapi limits on and fresh counters.

    The limiter is process-wide, so the flag and counters are put back on
    teardown for the tests that follow.
    """
    app = create_app(settings.model_copy(update={"rate_limit_enabled": True}))
    limiter.reset()
    try:
        with TestClient(app) as c:
            yield c
    finally:
        limiter.reset()
        limiter.enabled = False


@pytest.fixture
def signup(client: TestClient) -> Callable[..., tuple[str, int]]:
    """Return a helper that registers a user, logs in, and yields (token, user_id).

    admin=True promotes the account in the store before login, so the token
    carries role "admin" -- the same path an operator takes with set-role.
    """

    def _signup(
        username: str,
        password: str = "pw123",
        gender: str = "female",
        age: str = "22",
        admin: bool = False,
    ) -> tuple[str, int]:
        resp = client.post(
            "/api/register",
            json={"username": username, "password": password, "gender": gender, "age": age},
        )
        assert resp.status_code == 201, f"register {username}: {resp.status_code} {resp.text}"
        user_id = resp.json()["id"]
        if admin:
            client.app.state.user_store.set_role(user_id, ROLE_ADMIN)
        resp = client.post("/api/login", json={"username": username, "password": password})
        assert resp.status_code == 200, f"login {username}: {resp.status_code} {resp.text}"
        return resp.json()["token"], user_id

    return _signup
