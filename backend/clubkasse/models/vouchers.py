from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z, utcnow


class VoucherSale(db.Model):
    """
    Sale of a pre-paid consumption card to a member.

    Bookkeeping only: the card's value is consumed later through sales with
    payment_method=voucher_card, which never touch the account balance.
    """
    __tablename__ = "voucher_sales"
    __table_args__ = (
        db.Index("ix_voucher_sales_account", "account_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    voucher_serial_number = db.Column(db.String(64), nullable=False)
    voucher_hologram_number = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=True)

    sold_by = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "voucher_serial_number": self.voucher_serial_number,
            "voucher_hologram_number": self.voucher_hologram_number,
            "amount_cents": self.amount_cents,
            "sold_by": self.sold_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
