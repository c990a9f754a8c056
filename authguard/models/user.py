"""USER MODEL"""

import base64
import logging
import os
import uuid

from cryptography.fernet import Fernet, InvalidToken

from authguard import db
from authguard.models import GUID, utcnow
from authguard.utils.passwords import hash_password, verify_password

db.GUID = GUID

logger = logging.getLogger(__name__)


class User(db.Model):
    """User Model"""

    id = db.Column(
        db.GUID(),
        default=lambda: str(uuid.uuid4()),
        primary_key=True,
        autoincrement=False,
    )
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean(), default=True, nullable=False)
    is_admin = db.Column(db.Boolean(), default=False, nullable=False)

    # Lockout state
    failed_login_attempts = db.Column(db.Integer(), default=0, nullable=False)
    is_soft_locked = db.Column(db.Boolean(), default=False, nullable=False)
    is_hard_locked = db.Column(db.Boolean(), default=False, nullable=False)
    locked_until = db.Column(db.DateTime(), nullable=True)

    # Two-factor authentication; the secret is Fernet-encrypted at rest
    two_factor_enabled = db.Column(db.Boolean(), default=False, nullable=False)
    _two_factor_secret = db.Column("two_factor_secret", db.Text(), nullable=True)

    force_password_reset = db.Column(db.Boolean(), default=False, nullable=False)
    last_login = db.Column(db.DateTime(), nullable=True)
    last_login_ip = db.Column(db.String(45), nullable=True)
    created_at = db.Column(db.DateTime(), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(), default=utcnow, onupdate=utcnow)

    password_history = db.relationship(
        "PasswordHistory",
        backref=db.backref("user"),
        cascade="all, delete-orphan",
        lazy="dynamic",
        order_by="PasswordHistory.created_at.desc()",
    )

    __table_args__ = (db.Index("ix_user_lock_flags", "is_soft_locked", "is_hard_locked"),)

    def __init__(self, email, password, first_name, last_name, is_admin=False):
        self.email = email.strip().lower()
        self.password = self.set_password(password)
        self.first_name = first_name
        self.last_name = last_name
        self.is_admin = bool(is_admin)
        self.is_active = True
        self.failed_login_attempts = 0
        self.is_soft_locked = False
        self.is_hard_locked = False
        self.two_factor_enabled = False
        self.force_password_reset = False

    def __repr__(self):
        return f"<User {self.email!r}>"

    def serialize(self, include=None, exclude=None):
        """Return object data in easily serializeable format

        The password hash and two-factor secret are never part of the output.

        Args:
            include (list, optional): Additional sections to include
                (``lock_state`` adds unlocked / soft_locked / hard_locked)
            exclude (list, optional): Fields to drop from the output
        """
        include = include if include else []
        exclude = exclude if exclude else []
        user = {
            "id": str(self.id),
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
            "failed_login_attempts": self.failed_login_attempts,
            "is_soft_locked": self.is_soft_locked,
            "is_hard_locked": self.is_hard_locked,
            "locked_until": self.locked_until.isoformat()
            if self.locked_until
            else None,
            "two_factor_enabled": self.two_factor_enabled,
            "force_password_reset": self.force_password_reset,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "last_login_ip": self.last_login_ip,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

        if "lock_state" in include:
            from authguard.utils.lockout import lock_state

            user["lock_state"] = lock_state(self)

        for field in exclude:
            user.pop(field, None)

        return user

    def set_password(self, password):
        return hash_password(password)

    def check_password(self, password):
        """Check if provided password matches stored hash"""
        if not self.password:
            logger.warning(f"User {self.id} has no password hash stored")
            return False
        return verify_password(password, self.password)

    @property
    def two_factor_secret(self):
        return self._decrypt_secret(self._two_factor_secret)

    @two_factor_secret.setter
    def two_factor_secret(self, value):
        self._two_factor_secret = self._encrypt_secret(value)

    @staticmethod
    def _get_encryption_key() -> bytes:
        """Get encryption key for two-factor secrets"""
        key = os.getenv("TWO_FACTOR_ENCRYPTION_KEY") or os.getenv(
            "SECRET_KEY", "default-key-change-in-production"
        )
        # Ensure key is 32 bytes for Fernet
        key_bytes = key.encode("utf-8")[:32].ljust(32, b"0")
        return base64.urlsafe_b64encode(key_bytes)

    def _encrypt_secret(self, data: str | None) -> str | None:
        if not data:
            return None
        fernet = Fernet(self._get_encryption_key())
        return fernet.encrypt(data.encode("utf-8")).decode("utf-8")

    def _decrypt_secret(self, encrypted_data: str | None) -> str | None:
        if not encrypted_data:
            return None
        fernet = Fernet(self._get_encryption_key())
        try:
            return fernet.decrypt(encrypted_data.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error(f"Failed to decrypt two-factor secret for user {self.id}")
            return None
