# Overview: Flask API routes for the product catalog.

# backend/clubkasse/routes/products.py
"""
Product catalog routes.

STOCK: "stock" is accepted on create only and is booked as an initial stock
movement. Later changes go through /api/stock-movements.
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import Product
from ..services import products_service
from ..services.products_service import PRODUCT_MUTABLE_FIELDS
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    error_body,
    validate_payload,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS | {"stock"},
    required_on_create={"name", "member_price_cents", "guest_price_cents"},
    extra_fields={"barcodes", "created_by"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(PRODUCT_MUTABLE_FIELDS),
    extra_fields={"barcodes"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """?available=true limits the list to products on sale."""
    available_only = request.args.get("available", "").lower() in ("1", "true", "yes")
    try:
        return jsonify(products_service.list_products(available_only=available_only)), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/barcode/<code>")
def get_product_by_barcode_route(code: str):
    try:
        return jsonify(products_service.get_product_by_barcode(code)), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to look up product by barcode")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch=patch, actor=payload.get("created_by"))
        return jsonify(created), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch)
        return jsonify(updated), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
