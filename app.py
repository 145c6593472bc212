import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

from config import config_for_env
from errors import register_error_handlers, spa_entry
from models import db
from routes_admin import bp as admin_bp
from routes_shop import bp as shop_bp
from services import ensure_admin


def _configure_logging(app):
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))


def create_app(config=None, **overrides):
    app = Flask(__name__, static_folder="static")
    app.config.from_object(config or config_for_env())
    app.config.update(overrides)
    _configure_logging(app)
    if not app.config.get("JWT_SECRET"):
        raise RuntimeError("JWT_SECRET must be set to sign access tokens")

    origins = app.config.get("CORS_ORIGINS") or "*"
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    register_error_handlers(app)

    app.register_blueprint(shop_bp)
    app.register_blueprint(admin_bp)

    @app.before_request
    def log_request():
        app.logger.info(f"{request.method} {request.path}")

    @app.get("/")
    def index():
        entry = spa_entry()
        if entry is not None:
            return entry
        return jsonify({
            "success": True,
            "message": "El Chicho Shop API",
            "env": app.config.get("ENV_NAME"),
            "endpoints": {
                "public": ["/api/health", "/api/products", "/api/categories", "/api/sales",
                           "/api/clients/register", "/api/clients/login", "/api/clients/me"],
                "admin": ["/api/admin/login", "/api/admin/verify", "/api/admin/dashboard",
                          "/api/admin/categories", "/api/admin/subcategories", "/api/admin/products",
                          "/api/admin/clients", "/api/admin/sales"],
            },
        })

    # Create tables and reconcile the configured administrator once per process
    with app.app_context():
        db.create_all()
        ensure_admin(app.config)

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["PORT"], debug=app.config.get("DEBUG", False))
