from __future__ import annotations

import json
from typing import Any

from ..extensions import db
from ..models import Setting
from ..validation import ValidationError
from .concurrency import run_in_transaction


MAX_KEY_LENGTH = 128


def _encode(value: Any) -> str | None:
    """Objects and lists are stored as JSON, scalars as their string form."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _decode(raw: str | None) -> Any:
    if raw is None:
        return None
    if raw[:1] in ("{", "["):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def get_settings() -> dict[str, Any]:
    rows = db.session.query(Setting).order_by(Setting.key.asc()).all()
    return {row.key: _decode(row.value) for row in rows}


def replace_settings(values: dict) -> dict[str, Any]:
    """
    Replace the whole settings map in one transaction: keys missing from
    values are removed.
    """
    if not isinstance(values, dict):
        raise ValidationError("settings must be a JSON object")
    for key in values:
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("setting keys must be non-empty strings")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"setting key exceeds max length {MAX_KEY_LENGTH}")

    def _op() -> None:
        existing = {row.key: row for row in db.session.query(Setting).all()}
        for key, row in existing.items():
            if key not in values:
                db.session.delete(row)
        for key, value in values.items():
            row = existing.get(key)
            if row is None:
                db.session.add(Setting(key=key, value=_encode(value)))
            else:
                row.value = _encode(value)

    run_in_transaction(db.session, _op)
    return get_settings()
