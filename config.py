"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
workflow tuning and notification settings. It uses environment variables for sensitive information and defaults for
development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'invoiceflow.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for mutating requests (token sent as X-CSRFToken)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Invoice Workflow"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Root folder of the file-store collaborator (source files and payment artifacts)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))

    # Notification fan-out (best effort, at most once)
    NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)
    NOTIFICATION_QUEUE_SIZE = int(os.environ.get("NOTIFICATION_QUEUE_SIZE", "100"))

    # Optimistic-lock retries for a single transition before giving up
    TRANSITION_MAX_RETRIES = int(os.environ.get("TRANSITION_MAX_RETRIES", "3"))

    # Access codes: <PREFIX>-YYYYMMDD-NNNNN, date taken in the business timezone
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/Guatemala")
    ACCESS_CODE_PREFIX = os.environ.get("ACCESS_CODE_PREFIX", "AC")

    # Role -> module -> action grant table. None selects the built-in defaults
    # (invoiceflow.permissions.DEFAULT_ROLE_PERMISSIONS).
    ROLE_PERMISSIONS = None


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    WTF_CSRF_ENABLED = False
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
