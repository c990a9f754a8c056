"""PASSWORD HISTORY MODEL"""

import uuid

from authguard import db
from authguard.models import GUID, utcnow

db.GUID = GUID


class PasswordHistory(db.Model):
    __tablename__ = "password_history"

    id = db.Column(
        db.GUID(),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        autoincrement=False,
    )
    user_id = db.Column(
        db.GUID(),
        db.ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<PasswordHistory {self.user_id} {self.created_at}>"
