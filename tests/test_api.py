from __future__ import annotations


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health_reports_limits_in_debug_mode(client):
    response = client.get("/health", params={"raw": "true"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["connected_users"] == 0
    assert payload["limits"]["history_limit"] == 50
    assert response.headers["X-Request-ID"]


def test_health_hides_limits_without_raw(client):
    payload = client.get("/health").json()

    assert payload["limits"] is None


def test_register_returns_user_and_token(client):
    response = client.post(
        "/auth/register",
        json={"email": "alice@example.com", "username": "alice", "password": "s3cret-pass"},
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["user"]["username"] == "alice"
    assert payload["user"]["color"] == "#1E90FF"
    assert "password" not in payload["user"]
    assert payload["access_token"]


def test_register_rejects_duplicates(client, register_user):
    register_user("alice")

    same_email = client.post(
        "/auth/register",
        json={"email": "alice@example.com", "username": "someone", "password": "pw"},
    )
    same_username = client.post(
        "/auth/register",
        json={"email": "someone@example.com", "username": "alice", "password": "pw"},
    )

    assert same_email.status_code == 400
    assert same_email.json() == {"error_code": "EMAIL_IN_USE", "message": "Email already in use"}
    assert same_username.status_code == 400
    assert same_username.json()["error_code"] == "USERNAME_IN_USE"


def test_register_validates_payload(client):
    response = client.post("/auth/register", json={"email": "not-an-email", "username": "x", "password": "pw"})

    assert response.status_code == 422
    payload = response.json()
    assert payload["error_code"] == "INVALID_REQUEST"
    assert payload["hint"]


def test_login_and_verify(client, register_user):
    user, _ = register_user("bob", password="hunter22")

    response = client.post("/auth/login", json={"username": "bob", "password": "hunter22"})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]

    bearer = client.get("/auth/verify", headers=_auth(token))
    raw = client.get("/auth/verify", headers={"Authorization": token})

    assert bearer.status_code == 200
    assert bearer.json() == {
        "valid": True,
        "user": {"id": user["id"], "email": "bob@example.com", "username": "bob"},
    }
    assert raw.status_code == 200


def test_login_rejects_bad_credentials(client, register_user):
    register_user("bob", password="hunter22")

    wrong_password = client.post("/auth/login", json={"username": "bob", "password": "nope"})
    unknown_user = client.post("/auth/login", json={"username": "nobody", "password": "hunter22"})

    assert wrong_password.status_code == 401
    assert wrong_password.json()["error_code"] == "INVALID_CREDENTIALS"
    assert wrong_password.headers["WWW-Authenticate"] == "Bearer"
    assert unknown_user.status_code == 401


def test_protected_routes_require_a_valid_token(client):
    assert client.get("/auth/verify").status_code == 401
    assert client.get("/users").status_code == 401
    response = client.get("/users", headers=_auth("garbage"))
    assert response.status_code == 401
    assert response.json()["error_code"] == "INVALID_TOKEN"


def test_users_are_listed_without_password_hashes(client, register_user):
    _, token = register_user("alice")
    register_user("bob")

    response = client.get("/users", headers=_auth(token))

    assert response.status_code == 200
    users = response.json()
    assert [user["username"] for user in users] == ["alice", "bob"]
    assert all("passwordHash" not in user and "password_hash" not in user for user in users)
    assert {"id", "email", "username", "color", "createdAt", "updatedAt"} <= set(users[0])


def test_get_user(client, register_user):
    alice, token = register_user("alice")

    found = client.get(f"/users/{alice['id']}", headers=_auth(token))
    missing = client.get("/users/does-not-exist", headers=_auth(token))

    assert found.status_code == 200
    assert found.json()["username"] == "alice"
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "USER_NOT_FOUND"


def test_users_can_only_change_their_own_color(client, register_user):
    alice, alice_token = register_user("alice")
    bob, _ = register_user("bob")

    own = client.put(f"/users/{alice['id']}/color", json={"color": "#FF6347"}, headers=_auth(alice_token))
    other = client.put(f"/users/{bob['id']}/color", json={"color": "#000000"}, headers=_auth(alice_token))

    assert own.status_code == 200
    assert own.json()["color"] == "#FF6347"
    assert other.status_code == 403
    assert client.get(f"/users/{bob['id']}", headers=_auth(alice_token)).json()["color"] == "#1E90FF"


def test_unknown_route_uses_error_payload(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"
