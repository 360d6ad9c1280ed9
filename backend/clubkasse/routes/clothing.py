# Overview: Flask API routes for clothing items, clothing orders and clothing billings.

from flask import Blueprint, current_app, jsonify, request

from ..models import ClothingItem
from ..services import clothing_service
from ..services.clothing_service import ITEM_MUTABLE_FIELDS
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_clothing_item,
    error_body,
    validate_payload,
)

CLOTHING_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=set(ITEM_MUTABLE_FIELDS),
    required_on_create={"name", "price_cents"},
)

clothing_items_bp = Blueprint("clothing_items", __name__, url_prefix="/api/clothing-items")
clothing_orders_bp = Blueprint("clothing_orders", __name__, url_prefix="/api/clothing-orders")
clothing_billings_bp = Blueprint("clothing_billings", __name__, url_prefix="/api/clothing-billings")


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------

@clothing_items_bp.get("")
def list_items_route():
    try:
        return jsonify(clothing_service.list_items()), 200
    except Exception:
        current_app.logger.exception("Failed to list clothing items")
        return jsonify({"error": "Internal server error"}), 500


@clothing_items_bp.get("/available")
def list_available_items_route():
    try:
        return jsonify(clothing_service.list_items(available_only=True)), 200
    except Exception:
        current_app.logger.exception("Failed to list available clothing items")
        return jsonify({"error": "Internal server error"}), 500


@clothing_items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        return jsonify(clothing_service.get_item(item_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load clothing item")
        return jsonify({"error": "Internal server error"}), 500


@clothing_items_bp.post("")
def create_item_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ClothingItem, payload=payload, policy=CLOTHING_ITEM_POLICY, partial=False)
        enforce_rules_clothing_item(patch)
        return jsonify(clothing_service.create_item(patch=patch)), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except Exception:
        current_app.logger.exception("Failed to create clothing item")
        return jsonify({"error": "Internal server error"}), 500


@clothing_items_bp.put("/<int:item_id>")
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ClothingItem, payload=payload, policy=CLOTHING_ITEM_POLICY, partial=True)
        enforce_rules_clothing_item(patch)
        return jsonify(clothing_service.update_item(item_id=item_id, patch=patch)), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to update clothing item")
        return jsonify({"error": "Internal server error"}), 500


@clothing_items_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    try:
        clothing_service.delete_item(item_id=item_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to delete clothing item")
        return jsonify({"error": "Internal server error"}), 500


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------

@clothing_orders_bp.get("")
def list_orders_route():
    try:
        return jsonify(clothing_service.list_orders()), 200
    except Exception:
        current_app.logger.exception("Failed to list clothing orders")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.get("/stats")
def order_stats_route():
    try:
        return jsonify(clothing_service.order_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to load clothing order stats")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.get("/member/<int:account_id>")
def list_member_orders_route(account_id: int):
    try:
        return jsonify(clothing_service.list_orders(account_id=account_id)), 200
    except Exception:
        current_app.logger.exception("Failed to list member clothing orders")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return jsonify(clothing_service.get_order(order_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load clothing order")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.post("")
def create_order_route():
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(clothing_service.create_order(payload)), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create clothing order")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.put("/<int:order_id>")
def update_order_route(order_id: int):
    """Body: {"status"?, "notes"?}"""
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(clothing_service.update_order(order_id=order_id, payload=payload)), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to update clothing order")
        return jsonify({"error": "Internal server error"}), 500


@clothing_orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    try:
        clothing_service.delete_order(order_id=order_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to delete clothing order")
        return jsonify({"error": "Internal server error"}), 500


# ----------------------------------------------------------------------
# Billings
# ----------------------------------------------------------------------

@clothing_billings_bp.get("")
def list_clothing_billings_route():
    try:
        return jsonify(clothing_service.list_billings()), 200
    except Exception:
        current_app.logger.exception("Failed to list clothing billings")
        return jsonify({"error": "Internal server error"}), 500


@clothing_billings_bp.get("/<int:billing_id>")
def get_clothing_billing_route(billing_id: int):
    try:
        return jsonify(clothing_service.get_billing(billing_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load clothing billing")
        return jsonify({"error": "Internal server error"}), 500


@clothing_billings_bp.post("")
def create_clothing_billing_route():
    """Body: {"order_ids": [..], "billing_date"?, "billing_type"?}"""
    data = request.get_json(silent=True) or {}
    try:
        billing = clothing_service.create_billing(
            order_ids=data.get("order_ids"),
            billing_date=data.get("billing_date"),
            billing_type=data.get("billing_type"),
        )
        return jsonify(billing), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create clothing billing")
        return jsonify({"error": "Internal server error"}), 500
