# Overview: Flask API routes for billing batches.

from flask import Blueprint, current_app, jsonify, request

from ..services import billing_service
from ..validation import ConflictError, NotFoundError, ValidationError, error_body

billings_bp = Blueprint("billings", __name__, url_prefix="/api/billings")


@billings_bp.get("")
def list_billings_route():
    try:
        return jsonify(billing_service.list_billings()), 200
    except Exception:
        current_app.logger.exception("Failed to list billings")
        return jsonify({"error": "Internal server error"}), 500


@billings_bp.post("")
def create_billing_route():
    """Body: {"account_ids": [..], "billing_date"?: ISO-8601, "note"?: str}"""
    data = request.get_json(silent=True) or {}
    try:
        billing = billing_service.create_billing(
            account_ids=data.get("account_ids"),
            billing_date=data.get("billing_date"),
            note=data.get("note"),
        )
        return jsonify(billing), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create billing")
        return jsonify({"error": "Internal server error"}), 500


@billings_bp.get("/<int:billing_id>")
def get_billing_route(billing_id: int):
    try:
        return jsonify(billing_service.get_billing(billing_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load billing")
        return jsonify({"error": "Internal server error"}), 500


@billings_bp.get("/<int:billing_id>/transactions")
def billing_transactions_route(billing_id: int):
    try:
        return jsonify(billing_service.list_billing_transactions(billing_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to list billing transactions")
        return jsonify({"error": "Internal server error"}), 500
