import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_SECRET_KEY = "ctrltab-insecure-secret-change-me"
DEFAULT_ADMIN_PASSWORD = "admin123"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", DEFAULT_SECRET_KEY)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'ctrltab.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
    TOKEN_MAX_AGE_SECONDS = int(
        os.environ.get("TOKEN_MAX_AGE_SECONDS", str(7 * 24 * 3600))
    )
    MIN_PASSWORD_LENGTH = 6
    FAVICON_FETCH_TIMEOUT = float(os.environ.get("FAVICON_FETCH_TIMEOUT", "2"))
    FAVICON_MAX_BYTES = int(os.environ.get("FAVICON_MAX_BYTES", str(512 * 1024)))
    FAVICON_SERVICE_URL = os.environ.get(
        "FAVICON_SERVICE_URL",
        "https://www.google.com/s2/favicons?domain={host}&sz=32",
    )
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads" / "icons"))
    MAX_ICON_BYTES = int(os.environ.get("MAX_ICON_BYTES", str(512 * 1024)))
    # Leaves room for multipart framing around a maximum-size icon.
    MAX_CONTENT_LENGTH = MAX_ICON_BYTES + 64 * 1024


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret-key"
    ADMIN_USERNAME = "admin"
    ADMIN_PASSWORD = "admin-secret"
