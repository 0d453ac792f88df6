"""Application settings and validation."""

import logging
import os
from pathlib import Path

logger = logging.getLogger("jmkcms.config")

BASE = Path(__file__).resolve().parent.parent
DOCUMENT_STORES = ("sql", "firestore")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    LOG_LEVEL: str
    ADMIN_PASSWORD: str
    DOCUMENT_STORE: str
    DATABASE_URL: str
    FIREBASE_SERVICE_ACCOUNT_KEY: str
    FIREBASE_PROJECT_ID: str
    SESSION_COOKIE_SECURE: bool
    ALLOW_DEV_CORS: bool
    LOGIN_RATE_LIMIT_PER_MIN: int
    CONTACT_RATE_LIMIT_PER_MIN: int
    RATE_LIMIT_WINDOW_SECONDS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
        self.DOCUMENT_STORE = os.getenv("DOCUMENT_STORE", "sql").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.FIREBASE_SERVICE_ACCOUNT_KEY = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY", "")
        self.FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "exam-affiliate-ads")
        # Secure cookies break plain-http local testing, so dev opts out by default.
        self.SESSION_COOKIE_SECURE = _flag("SESSION_COOKIE_SECURE", "false" if self.ENV == "dev" else "true")
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        self.LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("LOGIN_RATE_LIMIT_PER_MIN", "10"))
        self.CONTACT_RATE_LIMIT_PER_MIN = int(os.getenv("CONTACT_RATE_LIMIT_PER_MIN", "5"))
        self.RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self._validate()

    def _validate(self):
        if self.DOCUMENT_STORE not in DOCUMENT_STORES:
            raise RuntimeError(f"DOCUMENT_STORE must be one of {', '.join(DOCUMENT_STORES)}")
        if self.DOCUMENT_STORE == "firestore" and not self.FIREBASE_SERVICE_ACCOUNT_KEY:
            logger.warning("FIREBASE_SERVICE_ACCOUNT_KEY is not set; the first store access will fail")
        if self.ENV != "dev" and not self.ADMIN_PASSWORD:
            # login fails closed without a password, so this is not fatal
            logger.warning("ADMIN_PASSWORD is not set; admin login is disabled")


settings = Settings()
