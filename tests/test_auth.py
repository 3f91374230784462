from tests.conftest import auth_header, register


def test_register_returns_token_and_user(client):
    body = register(client, "carol@mail.io")
    assert body["token"]
    assert body["user"]["email"] == "carol@mail.io"
    assert body["user"]["role"] == "USER"
    assert "password" not in body["user"]
    assert "createdAt" in body["user"]


def test_register_duplicate_email_conflicts(client):
    register(client, "carol@mail.io")
    res = client.post("/auth/register", json={"email": "carol@mail.io", "password": "another1"})
    assert res.status_code == 409


def test_register_short_password_rejected(client):
    res = client.post("/auth/register", json={"email": "carol@mail.io", "password": "123"})
    assert res.status_code == 400


def test_register_missing_fields_rejected(client):
    res = client.post("/auth/register", json={"password": "secret123"})
    assert res.status_code == 400
    res = client.post("/auth/register", json={"email": "carol@mail.io"})
    assert res.status_code == 400


def test_login_success(client, user):
    res = client.post("/auth/login", json={"email": "alice@mail.io", "password": "secret123"})
    assert res.status_code == 200
    assert res.json()["user"]["id"] == user["user"]["id"]


def test_login_wrong_password(client, user):
    res = client.post("/auth/login", json={"email": "alice@mail.io", "password": "wrong-password"})
    assert res.status_code == 401


def test_login_unknown_email(client):
    res = client.post("/auth/login", json={"email": "nobody@mail.io", "password": "secret123"})
    assert res.status_code == 401


def test_me_returns_current_user(client, user, user_headers):
    res = client.get("/auth/me", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["email"] == "alice@mail.io"


def test_me_requires_token(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "authentication token required"


def test_malformed_authorization_header(client, user):
    res = client.get("/auth/me", headers={"Authorization": user["token"]})
    assert res.status_code == 401


def test_invalid_token(client):
    res = client.get("/auth/me", headers=auth_header("not-a-jwt"))
    assert res.status_code == 401


def test_admin_route_forbidden_for_user(client, user_headers):
    res = client.get("/admin/categories", headers=user_headers)
    assert res.status_code == 403


def test_admin_route_allowed_for_admin(client, admin_headers):
    res = client.get("/admin/categories", headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == []


def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
