"""
Challenge Review Service
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'review_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

# Phase names that can carry reviews.  Matched after normalisation
# (lower-case with spaces, underscores and hyphens removed).
_DEFAULT_REVIEW_PHASES = (
    "Screening,Checkpoint Screening,Checkpoint Review,Review,"
    "Iterative Review,Approval,Post-Mortem"
)


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_REVIEWS = os.getenv("RATELIMIT_REVIEWS", "300/minute")

    # External directories (trailing slash stripped by the gateway)
    CHALLENGE_API_URL = os.getenv("CHALLENGE_API_URL", "http://localhost:4000/v6")
    RESOURCE_API_URL = os.getenv("RESOURCE_API_URL", "http://localhost:4000/v6")
    BUS_API_URL = os.getenv("BUS_API_URL", "http://localhost:4000/v5/bus/events")
    DIRECTORY_TIMEOUT_SECONDS = float(os.getenv("DIRECTORY_TIMEOUT_SECONDS", "10"))

    # Machine-to-machine token for outbound calls (omitted when unset)
    M2M_AUTH_URL = os.getenv("M2M_AUTH_URL")
    M2M_CLIENT_ID = os.getenv("M2M_CLIENT_ID")
    M2M_CLIENT_SECRET = os.getenv("M2M_CLIENT_SECRET")
    M2M_AUDIENCE = os.getenv("M2M_AUDIENCE")

    # Actor resolution
    ADMIN_ROLES = _csv(os.getenv("ADMIN_ROLES", "administrator,admin"))

    # Review engine
    REVIEW_PHASE_CATALOG = _csv(os.getenv("REVIEW_PHASE_CATALOG", _DEFAULT_REVIEW_PHASES))
    EVENT_ORIGINATOR = os.getenv("EVENT_ORIGINATOR", "review-api")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    CHALLENGE_API_URL = "http://challenges.test/v6"
    RESOURCE_API_URL = "http://resources.test/v6"
    BUS_API_URL = "http://bus.test/v5/bus/events"
    DIRECTORY_TIMEOUT_SECONDS = 1.0


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Heroku-style URLs use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
