# Overview: Flask API route for dashboard aggregates.

from flask import Blueprint, current_app, jsonify

from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/dashboard")
def dashboard_route():
    try:
        return jsonify(reporting_service.dashboard_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to load dashboard")
        return jsonify({"error": "Internal server error"}), 500
