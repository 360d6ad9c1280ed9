# Overview: Flask API route for the staff credential check.

from flask import Blueprint, current_app, jsonify, request

from ..services import auth_service
from ..services.auth_service import InvalidCredentialsError, RoleNotAllowedError
from ..validation import ValidationError, error_body

auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Body: {"username", "password", "role"?}

    200 {"success": true, "user": {...}}, 400 missing fields,
    401 bad credentials, 403 valid user but wrong role.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = auth_service.authenticate(data.get("username"), data.get("password"), data.get("role"))
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except InvalidCredentialsError as e:
        return jsonify({"error": str(e), "code": "invalid_credentials"}), 401
    except RoleNotAllowedError as e:
        return jsonify({"error": str(e), "code": "role_not_allowed"}), 403
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500
