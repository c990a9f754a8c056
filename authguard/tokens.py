"""Session token signing

Session tokens are flask-jwt-extended access tokens. They carry the account id
(``sub``), email and admin flag, expire after a fixed window and cannot be
renewed.
"""

import datetime
import logging

from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from jwt.exceptions import PyJWTError

from authguard.errors import AuthenticationError

logger = logging.getLogger(__name__)


class Signer:
    """``sign(claims, ttl)`` / ``verify(token)`` over HS256 JWTs"""

    @staticmethod
    def default_ttl() -> datetime.timedelta:
        return current_app.config.get(
            "JWT_ACCESS_TOKEN_EXPIRES", datetime.timedelta(hours=24)
        )

    @classmethod
    def sign(cls, claims, ttl=None):
        claims = dict(claims)
        identity = str(claims.pop("sub"))
        return create_access_token(
            identity=identity,
            additional_claims=claims,
            expires_delta=ttl or cls.default_ttl(),
        )

    @staticmethod
    def verify(token):
        try:
            return decode_token(token)
        except PyJWTError as e:
            logger.info(f"[JWT]: Rejected token: {e}")
            raise AuthenticationError("Invalid or expired token") from e


def issue_session_token(user):
    return Signer.sign(
        {"sub": user.id, "email": user.email, "is_admin": bool(user.is_admin)}
    )
