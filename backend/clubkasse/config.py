# backend/clubkasse/config.py
from __future__ import annotations
import os


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/clubkasse.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///clubkasse.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Register and admin frontends (Vite dev/preview servers by default)
    CORS_ORIGINS = _split_csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    TRANSACTION_PAGE_LIMIT = int(os.environ.get("TRANSACTION_PAGE_LIMIT", "100"))
    STOCK_MOVEMENT_LIMIT = int(os.environ.get("STOCK_MOVEMENT_LIMIT", "200"))

    BILLING_NUMBER_PREFIX = os.environ.get("BILLING_NUMBER_PREFIX", "BIL")
    CLOTHING_BILLING_NUMBER_PREFIX = os.environ.get("CLOTHING_BILLING_NUMBER_PREFIX", "CLO")

    # bcrypt cost factor for staff passwords
    BCRYPT_LOG_ROUNDS = int(os.environ.get("BCRYPT_LOG_ROUNDS", "12"))
