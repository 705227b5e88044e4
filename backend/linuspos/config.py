# backend/linuspos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/linuspos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///linuspos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # The distinguished account that can never be deactivated
    ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")

    # Seeds for the settings singleton (only used when no row exists yet)
    DEFAULT_STORE_NAME = os.environ.get("DEFAULT_STORE_NAME", "Linus POS")
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "SAR")
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "5"))
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0.15")

    # Terminal pollers (seconds)
    LOW_STOCK_POLL_SECONDS = float(os.environ.get("LOW_STOCK_POLL_SECONDS", "30"))
    PRODUCT_REFRESH_SECONDS = float(os.environ.get("PRODUCT_REFRESH_SECONDS", "5"))

    CORS_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    }
