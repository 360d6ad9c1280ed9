from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z


class Setting(db.Model):
    """
    Flat key-value settings for the register and admin panel.

    Values are stored as text; structured values are JSON-encoded by
    settings_service.
    """
    __tablename__ = "settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
