from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z


ADMIN_ROLES = ("admin", "bartender")


class AdminUser(db.Model):
    """
    Staff login for the admin panel and the bar register.

    Single credential check only: there are no sessions or tokens.
    """
    __tablename__ = "admin_users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_admin_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default="bartender")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
