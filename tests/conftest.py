import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from models import Role, User

TEST_SECRET = "test-secret"
ADMIN_EMAIL = "admin@shop.io"
ADMIN_PASSWORD = "admin-pass"
USER_PASSWORD = "secret123"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None, jwt_secret=TEST_SECRET, database_url="sqlite://", bcrypt_rounds=4, log_level="WARNING"
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session(app):
    session = app.state.session_factory()
    yield session
    session.close()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, email: str, password: str = USER_PASSWORD) -> dict:
    res = client.post("/auth/register", json={"email": email, "password": password})
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def user(client):
    return register(client, "alice@mail.io")


@pytest.fixture
def user_headers(user):
    return auth_header(user["token"])


@pytest.fixture
def other_headers(client):
    return auth_header(register(client, "bob@mail.io")["token"])


@pytest.fixture
def admin_headers(app, client):
    session = app.state.session_factory()
    session.add(User(email=ADMIN_EMAIL, password=app.state.hasher.hash(ADMIN_PASSWORD), role=Role.ADMIN.value))
    session.commit()
    session.close()
    res = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200, res.text
    return auth_header(res.json()["token"])


@pytest.fixture
def make_product(client, admin_headers):
    def _make(name: str, price: float = 10.0, stock: int = 5, **extra) -> dict:
        body = {"name": name, "price": price, "stock": stock, **extra}
        res = client.post("/admin/products", json=body, headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()

    return _make
