import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import create_app  # noqa: E402
from models.user import Role  # noqa: E402


class FixedClock:
    """Callable clock whose time the test controls."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def app():
    """Isolated app with a fresh in-memory database."""
    app = create_app("testing")
    yield app
    app.extensions["storage"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def storage(app_ctx):
    return app_ctx.extensions["storage"]


@pytest.fixture
def credentials(app_ctx):
    return app_ctx.extensions["credentials"]


@pytest.fixture
def token_issuer(app_ctx):
    return app_ctx.extensions["token_issuer"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    """Register through the API and return the JSON body."""
    def _register(email="a@x.com", password="secret1", name=None):
        payload = {"email": email, "password": password}
        if name is not None:
            payload["name"] = name
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return _register


@pytest.fixture
def login(client):
    def _login(email="a@x.com", password="secret1"):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()

    return _login


@pytest.fixture
def admin(app, login):
    """An ADMIN account logged in through the API."""
    with app.app_context():
        app.extensions["credentials"].register("root@x.com", "rootpass", "Root", role=Role.ADMIN)
    return login("root@x.com", "rootpass")
