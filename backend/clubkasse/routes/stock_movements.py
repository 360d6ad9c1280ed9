# Overview: Flask API routes for the stock movement journal.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services.transaction_service import TransactionCoordinator
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, error_body

stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


def _coordinator() -> TransactionCoordinator:
    return TransactionCoordinator(db.session)


@stock_movements_bp.get("")
def list_movements_route():
    try:
        limit = coerce_int("limit", request.args.get("limit", current_app.config.get("STOCK_MOVEMENT_LIMIT", 200)))
        if limit <= 0:
            raise ValidationError("limit must be > 0")
        movements = _coordinator().inventory.list_movements(limit=limit)
        return jsonify([m.to_dict() for m in movements]), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.get("/product/<int:product_id>")
def list_product_movements_route(product_id: int):
    try:
        movements = _coordinator().inventory.list_movements_for_product(product_id)
        return jsonify([m.to_dict() for m in movements]), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to list product stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.post("")
def record_movement_route():
    """
    Body: {"product_id", "movement_type": purchase|initial|correction,
           "quantity", "reason"?, "reference"?, "cost_per_unit_cents"?,
           "total_cost_cents"?, "created_by"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        missing = [k for k in ("product_id", "movement_type", "quantity") if data.get(k) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        movement = _coordinator().record_stock_movement(
            data["product_id"],
            data["movement_type"],
            data["quantity"],
            reason=data.get("reason"),
            actor=data.get("created_by"),
            reference=data.get("reference"),
            cost_per_unit_cents=data.get("cost_per_unit_cents"),
            total_cost_cents=data.get("total_cost_cents"),
        )
        return jsonify({"movement": movement.to_dict(), "new_stock": movement.stock_after}), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.delete("/<int:movement_id>")
def delete_movement_route(movement_id: int):
    try:
        return jsonify(_coordinator().delete_stock_movement(movement_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to delete stock movement")
        return jsonify({"error": "Internal server error"}), 500
