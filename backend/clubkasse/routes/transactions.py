# Overview: Flask API routes for sales, cancellations and billing stamps.

# backend/clubkasse/routes/transactions.py
"""
Transaction routes. All writes go through the TransactionCoordinator, which
commits each operation as a single database transaction.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services.transaction_service import TransactionCoordinator
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_bool, error_body

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _coordinator() -> TransactionCoordinator:
    return TransactionCoordinator(db.session)


@transactions_bp.get("")
def list_transactions_route():
    """
    Query params:
    - limit: int (default TRANSACTION_PAGE_LIMIT)
    - offset: int (default 0)
    - filter: all | today | week | month
    - account_id: int (optional)
    """
    try:
        result = _coordinator().list_transactions(
            limit=request.args.get("limit", current_app.config.get("TRANSACTION_PAGE_LIMIT", 100)),
            offset=request.args.get("offset", 0),
            period=request.args.get("filter", "all"),
            account_id=request.args.get("account_id"),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("")
def create_sale_route():
    """
    Body:
    {
      "account_id": 1,
      "items": [{"product_id": 3, "quantity": 2, "unit_price_cents"?: 250,
                 "total_cents"?: 500, "product_name"?: "..."}],
      "payment_method"?: "balance" | "voucher_card" | "voucher_refund" | "manual_booking" | "other",
      "retried"?: false,
      "original_timestamp"?: "2024-03-01T18:30:00Z"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        result = _coordinator().create_sale(
            data.get("account_id"),
            data.get("items"),
            data.get("payment_method"),
            retried=coerce_bool(data.get("retried", False)),
            original_timestamp=data.get("original_timestamp"),
        )
        return jsonify(result.to_dict()), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        return jsonify(_coordinator().get_transaction(transaction_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<int:transaction_id>")
def cancel_sale_route(transaction_id: int):
    """Soft delete (cancellation). Optional body: {"reason", "cancelled_by"}."""
    data = request.get_json(silent=True) or {}
    try:
        result = _coordinator().cancel_sale(
            transaction_id,
            reason=data.get("reason"),
            cancelled_by=data.get("cancelled_by"),
        )
        return jsonify(result.to_dict()), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/mark-billed")
def mark_billed_route():
    """Body: {"billing_id": 4, "account_ids": [1, 2]} -> {"count": n}"""
    data = request.get_json(silent=True) or {}
    try:
        if data.get("billing_id") is None:
            raise ValidationError("billing_id is required")
        count = _coordinator().mark_billed(data.get("billing_id"), data.get("account_ids"))
        return jsonify({"count": count}), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to mark transactions billed")
        return jsonify({"error": "Internal server error"}), 500
