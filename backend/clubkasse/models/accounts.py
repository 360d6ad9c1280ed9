from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z


ROLE_MEMBER = "member"
ROLE_GUEST = "guest"
ROLE_BARTENDER = "bartender"
ROLE_ADMIN = "admin"

ACCOUNT_ROLES = (ROLE_MEMBER, ROLE_GUEST, ROLE_BARTENDER, ROLE_ADMIN)


class Account(db.Model):
    """
    Club account (member, guest or staff) holding a running balance.

    BALANCE: balance_cents is signed. Negative means the member owes the club,
    positive is prepaid credit. It is written ONLY by AccountLedger, which is
    driven by the TransactionCoordinator. Profile updates never touch it.

    CONCURRENCY: version_id_col turns every balance write into
    UPDATE ... WHERE version_id = :seen, so a lost update raises StaleDataError
    instead of silently overwriting.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_role", "role"),
        db.Index("ix_accounts_name", "first_name", "last_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_MEMBER)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # SEPA direct debit
    sepa_active = db.Column(db.Boolean, nullable=False, default=False)
    iban = db.Column(db.String(34), nullable=True)
    account_holder = db.Column(db.String(200), nullable=True)
    mandate_reference = db.Column(db.String(35), nullable=True)

    # Register behaviour
    pin = db.Column(db.String(10), nullable=True)
    pin_required_for_name_search = db.Column(db.Boolean, nullable=False, default=False)
    pin_required_for_barcode = db.Column(db.Boolean, nullable=False, default=False)
    stay_active = db.Column(db.Boolean, nullable=False, default=False)

    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    barcodes = db.relationship(
        "AccountBarcode",
        backref="account",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="AccountBarcode.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def barcode_values(self) -> list[str]:
        return [b.value for b in self.barcodes]

    def __repr__(self) -> str:
        return f"<Account id={self.id} name={self.full_name!r} balance_cents={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "balance_cents": self.balance_cents,
            "barcodes": self.barcode_values,
            "sepa_active": self.sepa_active,
            "iban": self.iban,
            "account_holder": self.account_holder,
            "mandate_reference": self.mandate_reference,
            "pin_required_for_name_search": self.pin_required_for_name_search,
            "pin_required_for_barcode": self.pin_required_for_barcode,
            "has_pin": bool(self.pin),
            "stay_active": self.stay_active,
            "last_activity_at": to_utc_z(self.last_activity_at) if self.last_activity_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class AccountBarcode(db.Model):
    """
    Scan codes identifying an account (membership card, key fob, ...).

    Values are normalized to uppercase with whitespace stripped, and are
    unique across ALL accounts (a scan must resolve to exactly one member).
    """
    __tablename__ = "account_barcodes"
    __table_args__ = (
        db.UniqueConstraint("value", name="uq_account_barcodes_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    value = db.Column(db.String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AccountBarcode account_id={self.account_id} value={self.value!r}>"
