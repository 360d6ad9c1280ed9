# Overview: Flask API routes for member accounts and the SEPA candidate list.

# backend/clubkasse/routes/accounts.py
"""
Member account routes.

BALANCE: balance_cents is accepted on create only (opening balance). Updates
that carry it are rejected with 400; balances change through sales,
cancellations and billing only.
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import Account
from ..services import accounts_service
from ..services.accounts_service import ACCOUNT_MUTABLE_FIELDS
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_account,
    error_body,
    validate_payload,
)

ACCOUNT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=ACCOUNT_MUTABLE_FIELDS | {"balance_cents"},
    required_on_create={"first_name", "last_name", "barcodes"},
    extra_fields={"barcodes"},
)

ACCOUNT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(ACCOUNT_MUTABLE_FIELDS),
    extra_fields={"barcodes"},
)

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api")


@accounts_bp.get("/users")
def list_accounts_route():
    try:
        return jsonify(accounts_service.list_accounts()), 200
    except Exception:
        current_app.logger.exception("Failed to list accounts")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/users/search")
def search_accounts_route():
    """Register name search: ?q=<prefix>, at most 10 hits."""
    try:
        return jsonify(accounts_service.search_accounts(request.args.get("q", ""))), 200
    except Exception:
        current_app.logger.exception("Failed to search accounts")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/users/id/<int:account_id>")
def get_account_route(account_id: int):
    try:
        return jsonify(accounts_service.get_account(account_id)), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to load account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/users/<barcode>")
def get_account_by_barcode_route(barcode: str):
    try:
        return jsonify(accounts_service.get_account_by_barcode(barcode)), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except Exception:
        current_app.logger.exception("Failed to look up account by barcode")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/users")
def create_account_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_CREATE_POLICY, partial=False)
        enforce_rules_account(patch)
        created = accounts_service.create_account(patch=patch)
        return jsonify(created), 201
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.put("/users/<int:account_id>")
def update_account_route(account_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_UPDATE_POLICY, partial=True)
        enforce_rules_account(patch)
        updated = accounts_service.update_account(account_id=account_id, patch=patch)
        return jsonify(updated), 200
    except ValidationError as e:
        return jsonify(error_body(e)), 400
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to update account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.delete("/users/<int:account_id>")
def delete_account_route(account_id: int):
    try:
        accounts_service.delete_account(account_id=account_id)
        return jsonify({"ok": True}), 200
    except NotFoundError as e:
        return jsonify(error_body(e)), 404
    except ConflictError as e:
        return jsonify(error_body(e)), 409
    except Exception:
        current_app.logger.exception("Failed to delete account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/sepa-users")
def sepa_accounts_route():
    try:
        return jsonify(accounts_service.list_sepa_accounts()), 200
    except Exception:
        current_app.logger.exception("Failed to list SEPA accounts")
        return jsonify({"error": "Internal server error"}), 500
