import pytest

from app import create_app
from config import TestConfig, ProdConfig, config_for_env
from models import db, Customer


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert body["database"] == {"connected": True, "products": 0}
    assert body["env"]["name"] == "testing"


def test_index_describes_the_api(client):
    body = client.get("/").get_json()
    assert body["success"] is True
    assert "/api/products" in body["endpoints"]["public"]


def test_unknown_api_route_is_a_json_404(client):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.get_json() == {"success": False, "message": "Route not found", "path": "/api/nothing-here"}


def test_unknown_page_without_spa_entry_is_404(client):
    r = client.get("/some/page")
    assert r.status_code == 404
    assert r.get_json()["success"] is False


def test_wrong_method_uses_the_envelope(client):
    r = client.delete("/api/health")
    assert r.status_code == 405
    assert r.get_json()["success"] is False


def test_spa_entry_serves_non_api_routes(tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    (static / "index.html").write_text("<html>shop</html>")
    app = create_app(TestConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'spa.db'}")
    app.static_folder = str(static)
    with app.test_client() as c:
        assert b"shop" in c.get("/catalog/shoes").data
        assert c.get("/api/missing").status_code == 404
    with app.app_context():
        db.engine.dispose()


def test_unhandled_errors_hide_details_in_production(tmp_path):
    app = create_app(TestConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'boom.db'}",
                     EXPOSE_ERRORS=False)

    @app.get("/api/boom")
    def boom():
        raise RuntimeError("secret detail")

    with app.test_client() as c:
        r = c.get("/api/boom")
    assert r.status_code == 500
    assert r.get_json() == {"success": False, "message": "Something broke on our end"}
    with app.app_context():
        db.engine.dispose()


def test_config_selection():
    assert config_for_env("production") is ProdConfig
    assert config_for_env("TESTING") is TestConfig
    assert config_for_env("unknown").ENV_NAME == "development"


def test_constraint_violation_is_reported_as_conflict(tmp_path):
    app = create_app(TestConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'dupe.db'}")

    @app.post("/api/twins")
    def twins():
        for _ in range(2):
            customer = Customer(username="twin", name="Twin", email="twin@example.com")
            customer.set_password("secret123")
            db.session.add(customer)
        db.session.commit()

    with app.test_client() as c:
        r = c.post("/api/twins")
    assert r.status_code == 400
    assert r.get_json() == {"success": False, "message": "Resource already exists"}
    with app.app_context():
        assert Customer.query.count() == 0
        db.engine.dispose()


def test_production_requires_a_jwt_secret(tmp_path):
    with pytest.raises(RuntimeError):
        create_app(ProdConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'prod.db'}",
                   JWT_SECRET=None)
    assert ProdConfig.JWT_SECRET != "dev"
