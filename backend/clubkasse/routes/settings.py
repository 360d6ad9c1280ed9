# Overview: Flask API routes for the key/value settings store.

from flask import Blueprint, current_app, jsonify, request

from ..services import settings_service
from ..validation import ValidationError, error_body

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    try:
        return jsonify(settings_service.get_settings()), 200
    except Exception:
        current_app.logger.exception("Failed to load settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("")
def replace_settings_route():
    """Replaces ALL settings with the posted object."""
    payload = request.get_json(silent=True)
    try:
        return jsonify(settings_service.replace_settings(payload)), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception:
        current_app.logger.exception("Failed to save settings")
        return jsonify({"error": "Internal server error"}), 500
