"""Model for the login attempt ledger."""

from __future__ import annotations

import uuid

from authguard import db
from authguard.models import GUID, utcnow

db.GUID = GUID


class LoginAttempt(db.Model):
    """One login or registration attempt. Rows are never updated or deleted."""

    __tablename__ = "login_attempt"

    id = db.Column(
        db.GUID(),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        autoincrement=False,
    )
    user_id = db.Column(
        db.GUID(), db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    ip_address = db.Column(db.String(45), nullable=False, index=True)
    country = db.Column(db.String(100), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    success = db.Column(db.Boolean(), default=False, nullable=False, index=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(), default=utcnow, nullable=False, index=True)

    def serialize(self) -> dict[str, object]:
        """Serialize attempt data for API responses."""

        return {
            "id": str(self.id) if self.id else None,
            "user_id": str(self.user_id) if self.user_id else None,
            "email": self.email,
            "ip_address": self.ip_address,
            "country": self.country,
            "city": self.city,
            "success": self.success,
            "failure_reason": self.failure_reason,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
