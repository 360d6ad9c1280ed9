# Overview: Human-readable, time-based document numbers for billing batches.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from clubkasse.time_utils import stamp_for_number


def next_billing_number(model, *, prefix: str, at: datetime | None = None) -> str:
    """
    Allocate "<prefix>-YYYYMMDD-HHMM" for model.billing_number.

    Two batches cut in the same minute get "-2", "-3", ... appended. The
    unique constraint on billing_number is the final guard; callers run
    inside run_in_transaction, so a lost race rolls back cleanly.
    """
    base = f"{prefix}-{stamp_for_number(at)}"
    taken = {
        row[0]
        for row in db.session.query(model.billing_number)
        .filter(model.billing_number.like(f"{base}%"))
        .all()
    }
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
