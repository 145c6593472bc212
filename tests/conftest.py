import pytest

from app import create_app
from config import TestConfig
from models import db

ADMIN = {"username": "admin", "password": "admin-pass"}


@pytest.fixture
def db_uri(tmp_path):
    return f"sqlite:///{tmp_path / 'shop.db'}"


@pytest.fixture
def app(db_uri):
    app = create_app(TestConfig, SQLALCHEMY_DATABASE_URI=db_uri)
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client):
    r = client.post("/api/admin/login", json=ADMIN)
    assert r.status_code == 200
    return bearer(r.get_json()["data"]["token"])


def register(client, username="maria", email="maria@example.com", password="secret123", **extra):
    body = {"username": username, "email": email, "password": password, "name": username.title()}
    body.update(extra)
    return client.post("/api/clients/register", json=body)


@pytest.fixture
def customer_headers(client):
    assert register(client, phone="555-0101").status_code == 201
    r = client.post("/api/clients/login", json={"identifier": "maria", "password": "secret123"})
    assert r.status_code == 200
    return bearer(r.get_json()["data"]["token"])


@pytest.fixture
def make_product(client, admin_headers):
    def _make(**fields):
        body = {"name": "Widget", "price": 10}
        body.update(fields)
        r = client.post("/api/admin/products", json=body, headers=admin_headers)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["data"]
    return _make


@pytest.fixture
def make_category(client, admin_headers):
    def _make(name="Shoes"):
        r = client.post("/api/admin/categories", json={"name": name}, headers=admin_headers)
        assert r.status_code == 201
        return r.get_json()["data"]
    return _make
