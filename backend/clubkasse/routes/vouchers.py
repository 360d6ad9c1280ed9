# Overview: Flask API routes for voucher-card sales.

from flask import Blueprint, current_app, jsonify, request

from ..services import voucher_service
from ..validation import NotFoundError, ValidationError, error_body

vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/voucher-sales")


@vouchers_bp.get("")
def list_voucher_sales_route():
    try:
        return jsonify(voucher_service.list_voucher_sales()), 200
    except Exception:
        current_app.logger.exception("Failed to list voucher sales")
        return jsonify({"error": "Internal server error"}), 500


@vouchers_bp.post("")
def create_voucher_sale_route():
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(voucher_service.create_voucher_sale(payload)), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to create voucher sale")
        return jsonify({"error": "Internal server error"}), 500
