"""Application configuration for WeCarry."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Dict, Type

from dotenv import load_dotenv
from sqlalchemy.engine.url import make_url

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _engine_options_from_uri(uri: str) -> dict:
    url = make_url(uri)
    if url.get_backend_name() == "sqlite":
        return {"pool_pre_ping": True}
    if url.get_backend_name() in {"postgresql", "postgres"}:
        timeout = int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))
        return {"pool_pre_ping": True, "connect_args": {"connect_timeout": timeout}}
    return {"pool_pre_ping": True}


class BaseConfig:
    """Base configuration loaded for all environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///instance/wecarry.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", "60")))

    RATELIMIT_DEFAULT = "200/hour"
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")

    # Serving
    PORT = int(os.environ.get("PORT", "3000"))
    DISABLE_TLS = _env_flag("DISABLE_TLS")
    CERT_FILE = os.environ.get("CERT_FILE", "instance/cert.pem")
    KEY_FILE = os.environ.get("KEY_FILE", "instance/key.pem")

    # Links and sender identity used in notifications
    APP_NAME = os.environ.get("APP_NAME", "WeCarry")
    UI_URL = os.environ.get("UI_URL", "http://localhost:8080")
    EMAIL_FROM_ADDRESS = os.environ.get("EMAIL_FROM_ADDRESS", "no_reply@example.com")

    # Notification channels: "sendgrid" or "dummy" / "dummy"
    EMAIL_SERVICE = os.environ.get("EMAIL_SERVICE", "sendgrid")
    MOBILE_SERVICE = os.environ.get("MOBILE_SERVICE", "dummy")
    SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY", "")
    NEW_MESSAGE_NOTIFICATION_DELAY = float(os.environ.get("NEW_MESSAGE_NOTIFICATION_DELAY", "60"))

    # Identity providers
    AUTH_CALLBACK_URL = os.environ.get("AUTH_CALLBACK_URL", "http://localhost:3000/auth/callback")
    AZURE_AD_KEY = os.environ.get("AZURE_AD_KEY", "")
    AZURE_AD_SECRET = os.environ.get("AZURE_AD_SECRET", "")
    AZURE_AD_TENANT = os.environ.get("AZURE_AD_TENANT", "")
    GOOGLE_KEY = os.environ.get("GOOGLE_KEY", "")
    GOOGLE_SECRET = os.environ.get("GOOGLE_SECRET", "")

    # Observability
    ROLLBAR_TOKEN = os.environ.get("ROLLBAR_TOKEN", "")
    COMMIT_ID = os.environ.get("COMMIT_ID", "")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE", "")
    ERROR_LOG_FILE = os.environ.get("ERROR_LOG_FILE", "")

    # Background worker
    WORKER_AUTOSTART = _env_flag("WORKER_AUTOSTART", "true")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"
    EMAIL_SERVICE = os.environ.get("EMAIL_SERVICE", "dummy")


class TestingConfig(BaseConfig):
    TESTING = True
    ENV = "testing"
    # Flask-SQLAlchemy shares one connection for in-memory sqlite.
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    RATELIMIT_ENABLED = False
    SECRET_KEY = "testing-secret-key-not-for-production-use"
    JWT_SECRET_KEY = SECRET_KEY
    EMAIL_SERVICE = "dummy"
    MOBILE_SERVICE = "dummy"
    NEW_MESSAGE_NOTIFICATION_DELAY = 0.0
    WORKER_AUTOSTART = False
    WORKER_BACKOFF_SECONDS = 0
    ROLLBAR_TOKEN = ""
    LOG_FILE = ""
    ERROR_LOG_FILE = ""
    AZURE_AD_KEY = "6731de76-14a6-49ae-97bc-6eba6914391e"
    AZURE_AD_SECRET = "foo"
    AZURE_AD_TENANT = "edf3cc03-7edf-4299-871a-940bc318789c"


class ProductionConfig(BaseConfig):
    ENV = "production"


config_by_name: Dict[str, Type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    # CI pipelines set APP_ENV=ci; map to testing defaults.
    "ci": TestingConfig,
}
