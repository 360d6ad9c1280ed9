# backend/clubkasse/routes/system.py
"""System health endpoint for load balancers and the register's offline check."""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from clubkasse.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "connected", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unavailable", "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "connected"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }
    return body, (200 if healthy else 503)
