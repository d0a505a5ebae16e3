import threading
from datetime import datetime, timedelta, timezone

from api import create_app
from conftest import bearer
from models.refresh_token import RefreshToken
from utils.security import AccessTokenClaims, TokenIssuer


def test_register_returns_user_and_tokens(client):
    resp = client.post("/api/auth/register", json={"email": "a@x.com", "password": "secret1", "name": "Alice"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["accessToken"] and body["refreshToken"]
    assert body["user"]["email"] == "a@x.com"
    assert body["user"]["name"] == "Alice"
    assert body["user"]["role"] == "USER"
    assert "password" not in body["user"]
    assert "password_hash" not in body["user"]


def test_register_requires_email_and_password(client):
    for payload in ({}, {"email": "a@x.com"}, {"password": "secret1"}, {"email": "", "password": "x"}):
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Email and password are required"}


def test_register_rejects_non_string_fields(client):
    resp = client.post("/api/auth/register", json={"email": 42, "password": "secret1"})
    assert resp.status_code == 400
    assert "email" in resp.get_json()["error"]


def test_register_duplicate_email_conflicts(client, register):
    register()
    resp = client.post("/api/auth/register", json={"email": "a@x.com", "password": "another1"})
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "User already exists"}
    # the original password still works
    assert client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret1"}).status_code == 200


def test_login_failures_share_one_message(client, register):
    register()
    wrong = client.post("/api/auth/login", json={"email": "a@x.com", "password": "wrong"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@x.com", "password": "secret1"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json() == unknown.get_json() == {"error": "Invalid credentials"}


def test_login_requires_email_and_password(client):
    resp = client.post("/api/auth/login", json={"email": "a@x.com"})
    assert resp.status_code == 400


def test_login_with_no_body(client):
    resp = client.post("/api/auth/login", data="not json", content_type="text/plain")
    assert resp.status_code == 400


def test_full_token_lifecycle(client, register, login):
    first = register("a@x.com", "secret1")
    assert first["accessToken"] and first["refreshToken"]

    resp = client.post("/api/auth/login", json={"email": "a@x.com", "password": "wrong"})
    assert resp.status_code == 401

    pair = login("a@x.com", "secret1")
    token1 = pair["refreshToken"]
    assert token1 != first["refreshToken"]

    resp = client.post("/api/auth/refresh", json={"refreshToken": token1})
    assert resp.status_code == 200
    rotated = resp.get_json()
    assert rotated["accessToken"] and rotated["refreshToken"] != token1

    replay = client.post("/api/auth/refresh", json={"refreshToken": token1})
    assert replay.status_code == 403
    assert replay.get_json() == {"error": "Invalid or expired refresh token"}

    # the rotated token is still good exactly once
    assert client.post("/api/auth/refresh", json={"refreshToken": rotated["refreshToken"]}).status_code == 200


def test_refresh_requires_token(client):
    resp = client.post("/api/auth/refresh", json={})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Refresh token is required"}


def test_refresh_rejects_garbage_and_access_tokens(client, register):
    tokens = register()
    for bad in ("garbage", tokens["accessToken"]):
        resp = client.post("/api/auth/refresh", json={"refreshToken": bad})
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "Invalid or expired refresh token"}


def test_refresh_token_is_not_accepted_as_access_token(client, register):
    tokens = register()
    resp = client.get("/api/auth/sessions", headers=bearer(tokens["refreshToken"]))
    assert resp.status_code == 403


def test_logout_revokes_every_refresh_token(client, register, login):
    first = register()
    second = login()

    resp = client.post("/api/auth/logout", headers=bearer(second["accessToken"]))
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Logged out from all devices"}

    for tokens in (first, second):
        assert client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]}).status_code == 403


def test_logout_twice_succeeds(client, register):
    tokens = register()
    for _ in range(2):
        resp = client.post("/api/auth/logout", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 200


def test_access_token_outlives_logout(client, register):
    tokens = register()
    client.post("/api/auth/logout", headers=bearer(tokens["accessToken"]))
    resp = client.get("/api/auth/sessions", headers=bearer(tokens["accessToken"]))
    assert resp.status_code == 200
    assert resp.get_json() == {"sessions": []}


def test_protected_route_without_token_is_unauthorized(client):
    for headers in ({}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer "}):
        resp = client.post("/api/auth/logout", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Access token required"}


def test_protected_route_with_bad_token_is_forbidden(client):
    resp = client.get("/api/auth/sessions", headers=bearer("not-a-token"))
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Invalid or expired token"}


def test_list_sessions_newest_first(client, register, login):
    register()
    login()
    latest = login()

    resp = client.get("/api/auth/sessions", headers=bearer(latest["accessToken"]))
    assert resp.status_code == 200
    sessions = resp.get_json()["sessions"]
    assert len(sessions) == 3
    for item in sessions:
        assert set(item) == {"id", "createdAt", "expiresAt", "ipAddress", "userAgent"}
        assert item["ipAddress"] == "127.0.0.1"
    created = [item["createdAt"] for item in sessions]
    assert created == sorted(created, reverse=True)


def test_revoke_one_session(client, register, login):
    register()
    current = login()
    headers = bearer(current["accessToken"])

    sessions = client.get("/api/auth/sessions", headers=headers).get_json()["sessions"]
    target = sessions[-1]["id"]

    resp = client.delete(f"/api/auth/sessions/{target}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Session revoked successfully"}

    remaining = client.get("/api/auth/sessions", headers=headers).get_json()["sessions"]
    assert [s["id"] for s in remaining] == [s["id"] for s in sessions[:-1]]

    # already revoked: still a success
    assert client.delete(f"/api/auth/sessions/{target}", headers=headers).status_code == 200


def test_revoke_other_users_session_is_silent_noop(client, register):
    alice = register("a@x.com", "secret1")
    bob = register("b@x.com", "secret2")

    alice_sessions = client.get("/api/auth/sessions", headers=bearer(alice["accessToken"])).get_json()["sessions"]
    resp = client.delete(f"/api/auth/sessions/{alice_sessions[0]['id']}", headers=bearer(bob["accessToken"]))
    assert resp.status_code == 200

    still = client.get("/api/auth/sessions", headers=bearer(alice["accessToken"])).get_json()["sessions"]
    assert len(still) == 1
    assert client.post("/api/auth/refresh", json={"refreshToken": alice["refreshToken"]}).status_code == 200


def test_revoke_unknown_session_is_noop(client, register):
    tokens = register()
    resp = client.delete("/api/auth/sessions/does-not-exist", headers=bearer(tokens["accessToken"]))
    assert resp.status_code == 200


def test_revoke_session_requires_token(client):
    assert client.delete("/api/auth/sessions/anything").status_code == 401


def test_persistence_failure_is_internal_error(app, client, register, monkeypatch):
    tokens = register()

    def boom(user_id):
        raise RuntimeError("connection to db-primary:5432 refused")

    monkeypatch.setattr(app.extensions["session_store"], "list_active", boom)
    resp = client.get("/api/auth/sessions", headers=bearer(tokens["accessToken"]))
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Internal server error"}


def test_unknown_route_has_error_envelope(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Resource not found"}


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def _issuer_in_the_past(app, ago):
    then = datetime.now(timezone.utc) - ago
    return TokenIssuer(
        app.config["JWT_ACCESS_SECRET"],
        app.config["JWT_REFRESH_SECRET"],
        issuer=app.config["JWT_ISSUER"],
        clock=lambda: then,
    )


def test_expired_refresh_token_is_forbidden(app, client, register):
    user = register()["user"]
    claims = AccessTokenClaims(user["id"], user["email"], user["role"])
    stale = _issuer_in_the_past(app, timedelta(days=8)).issue_refresh_token(claims)

    resp = client.post("/api/auth/refresh", json={"refreshToken": stale.token})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Invalid or expired refresh token"}


def test_expired_access_token_is_forbidden(app, client, register):
    user = register()["user"]
    claims = AccessTokenClaims(user["id"], user["email"], user["role"])
    stale = _issuer_in_the_past(app, timedelta(hours=1)).issue_access_token(claims)

    resp = client.get("/api/auth/sessions", headers=bearer(stale.token))
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Invalid or expired token"}


def test_refresh_losing_rotation_race_is_forbidden(app, client, register, monkeypatch):
    tokens = register()
    store = app.extensions["session_store"]
    find_active = store.find_active

    def find_then_rotated_elsewhere(token, user_id):
        record = find_active(token, user_id)
        # another request rotates the same session before this one does
        store.revoke_one(record.id, user_id)
        return record

    monkeypatch.setattr(store, "find_active", find_then_rotated_elsewhere)
    resp = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Invalid or expired refresh token"}

    with app.app_context():
        assert app.extensions["storage"].count(RefreshToken) == 1


def test_concurrent_refreshes_have_one_winner(tmp_path):
    app = create_app("testing", DATABASE_URL=f"sqlite:///{tmp_path / 'race.db'}")
    try:
        resp = app.test_client().post("/api/auth/register", json={"email": "a@x.com", "password": "secret1"})
        token = resp.get_json()["refreshToken"]

        attempts = 8
        barrier = threading.Barrier(attempts)
        statuses = []
        lock = threading.Lock()

        def refresh():
            client = app.test_client()
            barrier.wait()
            status = client.post("/api/auth/refresh", json={"refreshToken": token}).status_code
            with lock:
                statuses.append(status)

        threads = [threading.Thread(target=refresh) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(statuses) == [200] + [403] * (attempts - 1)
    finally:
        app.extensions["storage"].dispose()
