# backend/tillpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tillpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///tillpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Admin bearer tokens
    ADMIN_SESSION_HOURS = int(os.environ.get("ADMIN_SESSION_HOURS", "12"))

    # Payment gateway relay
    PAYMENT_API_BASE_URL = os.environ.get("PAYMENT_API_BASE_URL", "https://api.mercadopago.com")
    PAYMENT_HTTP_TIMEOUT = float(os.environ.get("PAYMENT_HTTP_TIMEOUT", "15"))
    PAYMENT_WEBHOOK_SECRET = os.environ.get("PAYMENT_WEBHOOK_SECRET", "")
    PAYMENT_DEFAULT_STORE_ID = os.environ.get("PAYMENT_DEFAULT_STORE_ID", "STORE001")
    PAYMENT_DEFAULT_POS_ID = os.environ.get("PAYMENT_DEFAULT_POS_ID", "POS001")

    # Card confirmation polling: every 2 seconds, up to 60 attempts (~2 minutes)
    CARD_POLL_INTERVAL_SECONDS = float(os.environ.get("CARD_POLL_INTERVAL_SECONDS", "2"))
    CARD_POLL_MAX_ATTEMPTS = int(os.environ.get("CARD_POLL_MAX_ATTEMPTS", "60"))

    # Close-session export documents
    EXPORT_FORMAT_VERSION = "1.0"

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }
