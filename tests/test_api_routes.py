"""
tests/test_api_routes.py -- Integration tests for the msgboard HTTP API.

These tests exercise the full stack: FastAPI routing -> session dependency ->
ownership policy -> UserStore/BoardStore -> response model serialization.
Unit testing individual route functions would miss middleware, dependency
injection, and camelCase serialization -- integration tests are the right
tool here.

Coverage:
  - Accounts: register 201, duplicate 400, missing field 400, login 200/400, GET /user
  - Auth failures: 401 without a token, 403 with an expired or foreign token
  - Messages: create/list/edit/delete, owner vs non-owner vs admin
  - Likes: like/unlike with the zero floor
  - Messages: multipart create with inline image files
  - Replies: create, list, fetch one, delete -> 404 afterwards; 404 once the parent is gone
  - Appeals: create/list, listForUser self/admin/other, unrestricted delete
  - Login rate limit: 429 after 10 attempts per minute

Fixtures used (from conftest.py):
  - client: TestClient around a fresh app and in-memory database
  - signup: (username, ..., admin=False) -> (token, user_id)
"""

from __future__ import annotations

import re
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.models import User
from auth.tokens import create_access_token

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _post_message(client: TestClient, token: str, text: str = "hello board") -> dict:
    resp = client.post(
        "/api/messages",
        json={"name": "alice", "message": text, "textColor": "#f00"},
        headers=_auth(token),
    )
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class TestAccounts:
    def test_register_returns_user_without_hash(self, client: TestClient) -> None:
        resp = client.post(
            "/api/register",
            json={"username": "alice", "password": "pw123", "gender": "female", "age": 22},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["username"] == "alice"
        assert data["role"] == "user"
        assert data["age"] == "22"
        assert data["avatar"] == "path/to/female-avatar.jpg"
        assert "password" not in data and "hashedPassword" not in data

    def test_duplicate_username_rejected_and_first_user_still_logs_in(self, client: TestClient, signup) -> None:
        signup("alice")
        resp = client.post(
            "/api/register",
            json={"username": "alice", "password": "other", "gender": "male", "age": "40"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate_username"

        resp = client.post("/api/login", json={"username": "alice", "password": "pw123"})
        assert resp.status_code == 200, "The original account must be unaffected by the duplicate attempt"

    def test_register_missing_field_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/register", json={"username": "bob", "password": "pw"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_login_returns_token_and_profile(self, client: TestClient) -> None:
        client.post("/api/register", json={"username": "carl", "password": "pw123", "gender": "male", "age": "30"})
        resp = client.post("/api/login", json={"username": "carl", "password": "pw123"})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert set(data) == {"token", "userId", "avatar", "gender"}
        assert data["avatar"] == "path/to/male-avatar.jpg"
        assert data["gender"] == "male"

    @pytest.mark.parametrize("username,password", [("alice", "wrong"), ("nobody", "pw123")])
    def test_login_bad_credentials_is_400(self, client: TestClient, signup, username, password) -> None:
        signup("alice")
        resp = client.post("/api/login", json={"username": username, "password": password})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_login_missing_password_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/login", json={"username": "alice"})
        assert resp.status_code == 400

    def test_current_user_reads_live_role(self, client: TestClient, signup) -> None:
        token, uid = signup("dana")
        resp = client.get("/api/user", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json() == {"userId": uid, "role": "user"}

        client.app.state.user_store.set_role(uid, "admin")
        resp = client.get("/api/user", headers=_auth(token))
        assert resp.json()["role"] == "admin", "GET /api/user must reflect the stored role, not the token"


# ---------------------------------------------------------------------------
# Session failures
# ---------------------------------------------------------------------------


PROTECTED = [
    ("get", "/api/user", None),
    ("post", "/api/messages", {"name": "n", "message": "m"}),
    ("put", "/api/messages/1", {"message": "m"}),
    ("delete", "/api/messages/1", None),
    ("post", "/api/messages/1/like", None),
    ("post", "/api/messages/1/unlike", None),
    ("post", "/api/messages/1/replies", {"reply": "r"}),
    ("delete", "/api/messages/1/replies/1", None),
    ("post", "/api/appeals", {"appealType": "spam", "report": "r", "content": "c"}),
    ("get", "/api/appeals", None),
    ("get", "/api/appeals/user/1", None),
    ("delete", "/api/appeals/1", None),
]


class TestSessionFailures:
    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_missing_token_is_401(self, client: TestClient, method, path, body) -> None:
        resp = client.request(method, path, json=body)
        assert resp.status_code == 401, f"{method.upper()} {path}: expected 401, got {resp.status_code}"
        assert resp.json()["error"]["code"] == "missing_credentials"

    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_expired_token_is_rejected(self, client: TestClient, signup, method, path, body) -> None:
        _token, uid = signup("alice")
        user = User(id=uid, username="alice", gender="female", age="22", role="user")
        expired = create_access_token(user, client.app.state.settings.secret_key, -60)
        resp = client.request(method, path, json=body, headers=_auth(expired))
        assert resp.status_code == 403, f"{method.upper()} {path}: expected 403, got {resp.status_code}"
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_foreign_signature_is_rejected(self, client: TestClient) -> None:
        user = User(id=1, username="x", gender="male", age="1", role="admin")
        forged = create_access_token(user, "attacker-key-0123456789abcdef0123456789", 3600)
        resp = client.get("/api/appeals", headers=_auth(forged))
        assert resp.status_code == 403

    def test_bearer_without_token_is_401(self, client: TestClient) -> None:
        resp = client.get("/api/user", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Messages and likes
# ---------------------------------------------------------------------------


class TestMessages:
    def test_scenario_post_like_unlike(self, client: TestClient, signup) -> None:
        """register -> login -> post -> like -> unlike twice; the counter floors at zero."""
        token, uid = signup("alice", "pw123", "female", "22")
        created = _post_message(client, token)
        assert created["likes"] == 0
        assert created["userId"] == uid
        assert created["textColor"] == "#f00"
        assert created["replies"] == []
        mid = created["id"]

        resp = client.post(f"/api/messages/{mid}/like", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["likes"] == 1

        assert client.post(f"/api/messages/{mid}/unlike", headers=_auth(token)).json()["likes"] == 0
        assert client.post(f"/api/messages/{mid}/unlike", headers=_auth(token)).json()["likes"] == 0

    def test_like_missing_message_is_404(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        assert client.post("/api/messages/999/like", headers=_auth(token)).status_code == 404
        assert client.post("/api/messages/999/unlike", headers=_auth(token)).status_code == 404

    def test_create_message_missing_text_is_400(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        resp = client.post("/api/messages", json={"name": "alice"}, headers=_auth(token))
        assert resp.status_code == 400

    def test_create_message_multipart_stores_images(self, client: TestClient, signup, settings) -> None:
        token, _ = signup("alice")
        resp = client.post(
            "/api/messages",
            data={"name": "alice", "message": "look", "textColor": "#0f0"},
            files=[("images", ("cat.png", PNG, "image/png")), ("images", ("dog.png", PNG, "image/png"))],
            headers=_auth(token),
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["message"] == "look"
        assert data["textColor"] == "#0f0"
        assert len(data["images"]) == 2
        assert re.fullmatch(r"\d+-cat\.png", data["images"][0])
        assert re.fullmatch(r"\d+-(\d+-)?dog\.png", data["images"][1])
        for ref in data["images"]:
            assert (Path(settings.upload_dir) / ref).read_bytes() == PNG
        assert client.get("/api/messages").json()[0]["images"] == data["images"]

    def test_create_message_multipart_keeps_refs_and_files_in_order(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        resp = client.post(
            "/api/messages",
            data={"name": "alice", "message": "mixed", "images": "1700000000000-old.png"},
            files=[("images", ("new.png", PNG, "image/png"))],
            headers=_auth(token),
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        images = resp.json()["images"]
        assert images[0] == "1700000000000-old.png"
        assert re.fullmatch(r"\d+-new\.png", images[1])

    def test_create_message_multipart_bad_image_creates_nothing(self, client: TestClient, signup, settings) -> None:
        token, _ = signup("alice")
        resp = client.post(
            "/api/messages",
            data={"name": "alice", "message": "bad"},
            files=[("images", ("x.html", b"<html>", "text/html"))],
            headers=_auth(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "unsupported_format"
        assert client.get("/api/messages").json() == []
        upload_dir = Path(settings.upload_dir)
        assert not upload_dir.exists() or list(upload_dir.iterdir()) == []

    def test_create_message_multipart_missing_text_is_400(self, client: TestClient, signup, settings) -> None:
        token, _ = signup("alice")
        resp = client.post(
            "/api/messages",
            data={"name": "alice"},
            files=[("images", ("cat.png", PNG, "image/png"))],
            headers=_auth(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"
        assert list(Path(settings.upload_dir).iterdir()) == [], "Text fields are checked before files are written"

    def test_list_messages_is_public_and_populated(self, client: TestClient, signup) -> None:
        alice, alice_id = signup("alice")
        bob, _ = signup("bob", gender="male")
        mid = _post_message(client, alice)["id"]
        client.post(f"/api/messages/{mid}/replies", json={"reply": "hi alice"}, headers=_auth(bob))

        resp = client.get("/api/messages")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        item = data[0]
        assert item["user"]["id"] == alice_id
        assert item["user"]["username"] == "alice"
        assert len(item["replies"]) == 1
        assert item["replies"][0]["reply"] == "hi alice"
        assert item["replies"][0]["user"]["username"] == "bob"

    def test_owner_edits_partially(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        mid = _post_message(client, token)["id"]
        resp = client.put(f"/api/messages/{mid}", json={"message": "edited"}, headers=_auth(token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "edited"
        assert data["name"] == "alice"
        assert data["textColor"] == "#f00"

    def test_non_owner_cannot_edit_or_delete(self, client: TestClient, signup) -> None:
        alice, _ = signup("alice")
        bob, _ = signup("bob")
        mid = _post_message(client, alice)["id"]

        resp = client.put(f"/api/messages/{mid}", json={"message": "hijack"}, headers=_auth(bob))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert client.delete(f"/api/messages/{mid}", headers=_auth(bob)).status_code == 403

        listed = client.get("/api/messages").json()
        assert listed[0]["message"] == "hello board", "A rejected edit must not change the message"

    def test_admin_can_delete_but_not_edit(self, client: TestClient, signup) -> None:
        alice, _ = signup("alice")
        admin, _ = signup("root", admin=True)
        mid = _post_message(client, alice)["id"]

        resp = client.put(f"/api/messages/{mid}", json={"message": "admin edit"}, headers=_auth(admin))
        assert resp.status_code == 403, "Admins have no override for editing"

        resp = client.delete(f"/api/messages/{mid}", headers=_auth(admin))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Message deleted successfully"
        assert client.get("/api/messages").json() == []

    def test_edit_or_delete_missing_message_is_404(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        assert client.put("/api/messages/999", json={"message": "x"}, headers=_auth(token)).status_code == 404
        assert client.delete("/api/messages/999", headers=_auth(token)).status_code == 404


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------


class TestReplies:
    def test_reply_lifecycle(self, client: TestClient, signup) -> None:
        alice, _ = signup("alice")
        bob, bob_id = signup("bob")
        mid = _post_message(client, alice)["id"]

        resp = client.post(f"/api/messages/{mid}/replies", json={"reply": "nice"}, headers=_auth(bob))
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        reply = resp.json()
        assert reply["messageId"] == mid
        assert reply["userId"] == bob_id
        rid = reply["id"]

        listed = client.get(f"/api/messages/{mid}/replies").json()
        assert [r["id"] for r in listed] == [rid]
        assert client.get(f"/api/messages/{mid}/replies/{rid}").json()["reply"] == "nice"

        resp = client.delete(f"/api/messages/{mid}/replies/{rid}", headers=_auth(bob))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Reply deleted."

        assert client.get(f"/api/messages/{mid}/replies/{rid}").status_code == 404
        assert client.get("/api/messages").json()[0]["replies"] == []

    def test_reply_to_missing_message_is_404(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        resp = client.post("/api/messages/999/replies", json={"reply": "x"}, headers=_auth(token))
        assert resp.status_code == 404

    def test_empty_reply_is_400(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        mid = _post_message(client, token)["id"]
        resp = client.post(f"/api/messages/{mid}/replies", json={"reply": "   "}, headers=_auth(token))
        assert resp.status_code == 400

    def test_reply_delete_by_other_user_forbidden_admin_allowed(self, client: TestClient, signup) -> None:
        alice, _ = signup("alice")
        bob, _ = signup("bob")
        admin, _ = signup("root", admin=True)
        mid = _post_message(client, alice)["id"]
        rid = client.post(f"/api/messages/{mid}/replies", json={"reply": "x"}, headers=_auth(bob)).json()["id"]

        assert client.delete(f"/api/messages/{mid}/replies/{rid}", headers=_auth(alice)).status_code == 403
        assert client.delete(f"/api/messages/{mid}/replies/{rid}", headers=_auth(admin)).status_code == 200

    def test_reply_under_wrong_message_is_404(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        m1 = _post_message(client, token, "one")["id"]
        m2 = _post_message(client, token, "two")["id"]
        rid = client.post(f"/api/messages/{m1}/replies", json={"reply": "x"}, headers=_auth(token)).json()["id"]
        assert client.get(f"/api/messages/{m2}/replies/{rid}").status_code == 404
        assert client.delete(f"/api/messages/{m2}/replies/{rid}", headers=_auth(token)).status_code == 404

    def test_replies_of_deleted_message_are_404(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        mid = _post_message(client, token)["id"]
        rid = client.post(f"/api/messages/{mid}/replies", json={"reply": "x"}, headers=_auth(token)).json()["id"]
        assert client.delete(f"/api/messages/{mid}", headers=_auth(token)).status_code == 200

        assert client.get(f"/api/messages/{mid}/replies").status_code == 404
        assert client.get(f"/api/messages/{mid}/replies/{rid}").status_code == 404
        assert client.delete(f"/api/messages/{mid}/replies/{rid}", headers=_auth(token)).status_code == 404


# ---------------------------------------------------------------------------
# Appeals
# ---------------------------------------------------------------------------


class TestAppeals:
    def _file(self, client: TestClient, token: str) -> dict:
        resp = client.post(
            "/api/appeals",
            json={"appealType": "spam", "report": "message 1", "content": "advertising"},
            headers=_auth(token),
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        return resp.json()

    def test_create_and_list(self, client: TestClient, signup) -> None:
        token, uid = signup("alice")
        appeal = self._file(client, token)
        assert appeal["userId"] == uid
        assert appeal["appealType"] == "spam"

        listed = client.get("/api/appeals", headers=_auth(token)).json()
        assert len(listed) == 1
        assert listed[0]["user"]["username"] == "alice"

    def test_missing_field_is_400(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        resp = client.post("/api/appeals", json={"appealType": "spam"}, headers=_auth(token))
        assert resp.status_code == 400

    def test_list_for_user_self_admin_other(self, client: TestClient, signup) -> None:
        alice, alice_id = signup("alice")
        bob, _ = signup("bob")
        admin, _ = signup("root", admin=True)
        self._file(client, alice)
        self._file(client, bob)

        own = client.get(f"/api/appeals/user/{alice_id}", headers=_auth(alice))
        assert own.status_code == 200
        assert len(own.json()) == 1
        assert own.json()[0]["userId"] == alice_id

        assert client.get(f"/api/appeals/user/{alice_id}", headers=_auth(admin)).status_code == 200
        assert client.get(f"/api/appeals/user/{alice_id}", headers=_auth(bob)).status_code == 403

    def test_any_user_may_delete_any_appeal(self, client: TestClient, signup) -> None:
        alice, _ = signup("alice")
        bob, _ = signup("bob")
        aid = self._file(client, alice)["id"]

        resp = client.delete(f"/api/appeals/{aid}", headers=_auth(bob))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Appeal deleted."
        assert client.get("/api/appeals", headers=_auth(alice)).json() == []

    def test_delete_missing_appeal_still_200(self, client: TestClient, signup) -> None:
        token, _ = signup("alice")
        assert client.delete("/api/appeals/999", headers=_auth(token)).status_code == 200


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def test_login_rate_limited_after_ten_attempts(rate_limited_client: TestClient) -> None:
    """The 11th login attempt inside a minute from one address gets 429."""
    client = rate_limited_client
    codes = [
        client.post("/api/login", json={"username": "ghost", "password": "pw"}).status_code for _ in range(11)
    ]
    assert codes[:10] == [400] * 10
    assert codes[10] == 429
    resp = client.post("/api/login", json={"username": "ghost", "password": "pw"})
    assert resp.json()["error"]["code"] == "rate_limited"
    assert "Retry-After" in resp.headers


def test_limiter_flag_is_shared_by_every_app(settings) -> None:
    """Apps in one process share the limiter; the last create_app() sets enabled for all."""
    try:
        first = create_app(settings.model_copy(update={"rate_limit_enabled": True}))
        assert limiter.enabled is True
        second = create_app(settings)
        assert first.state.limiter is second.state.limiter
        assert first.state.limiter.enabled is False
    finally:
        limiter.reset()
        limiter.enabled = False
