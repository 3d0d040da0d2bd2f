"""
Status Reconciler
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])

Rollout flags (DUAL_WRITE_ENABLED, SAFE_MODE, READ_FROM_UNIFIED) are kept
as the plain "true"/"false" strings operators set in the environment.
Components never read them from here directly; they receive a parsed
``RolloutFlags`` value (see ``status_reconciler.rollout``).
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'status_reconciler_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _database_url(default=None):
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Output locations for batch jobs
    REPORTS_DIR = os.getenv("REPORTS_DIR", os.path.join(basedir, "reports"))
    BACKUPS_DIR = os.getenv("BACKUPS_DIR", os.path.join(basedir, "backups"))

    # Rollout flags ("true" / "false")
    DUAL_WRITE_ENABLED = os.getenv("DUAL_WRITE_ENABLED", "false")
    SAFE_MODE = os.getenv("SAFE_MODE", "true")
    READ_FROM_UNIFIED = os.getenv("READ_FROM_UNIFIED", "false")

    # Source tag stamped into *_updated_by by the repairer
    REPAIR_SOURCE_TAG = os.getenv("REPAIR_SOURCE_TAG", "consistency-repair")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    DUAL_WRITE_ENABLED = "false"
    SAFE_MODE = "true"
    READ_FROM_UNIFIED = "false"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
