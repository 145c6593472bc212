import os
from dotenv import load_dotenv
load_dotenv()  # fine locally; real deployments set the environment directly


def _database_url():
    url = os.getenv("DATABASE_URL", "sqlite:///elchicho.db")
    # Heroku/Render style URLs are not accepted by SQLAlchemy 1.4+
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")
    JWT_SECRET = os.getenv("JWT_SECRET", os.getenv("SECRET_KEY", "dev"))
    JWT_ALGORITHM = "HS256"
    ADMIN_TOKEN_HOURS = int(os.getenv("ADMIN_TOKEN_HOURS", "8"))
    CLIENT_TOKEN_HOURS = int(os.getenv("CLIENT_TOKEN_HOURS", "24"))

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
    ADMIN_NAME = os.getenv("ADMIN_NAME", "Main Administrator")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # base64 product images travel inside JSON bodies
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024
    LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "5000"))
    ENV_NAME = "base"
    EXPOSE_ERRORS = _flag("EXPOSE_ERRORS", False)


class DevConfig(BaseConfig):
    DEBUG = True
    ENV_NAME = "development"
    EXPOSE_ERRORS = _flag("EXPOSE_ERRORS", True)


class ProdConfig(BaseConfig):
    DEBUG = False
    ENV_NAME = "production"
    # no fallback key in production; create_app refuses to start without it
    JWT_SECRET = os.getenv("JWT_SECRET")


class TestConfig(BaseConfig):
    TESTING = True
    ENV_NAME = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET = "elchicho-test-signing-secret-0123456789"
    ADMIN_USERNAME = "admin"
    ADMIN_PASSWORD = "admin-pass"
    ADMIN_EMAIL = "admin@elchicho.test"
    EXPOSE_ERRORS = True
    LOG_LEVEL = "WARNING"


CONFIGS = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}


def config_for_env(name=None):
    name = (name or os.getenv("APP_ENV", "development")).strip().lower()
    return CONFIGS.get(name, DevConfig)
