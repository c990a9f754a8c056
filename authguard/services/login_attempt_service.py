"""LOGIN ATTEMPT SERVICE"""

import datetime
import logging

import rollbar
from sqlalchemy.exc import SQLAlchemyError

from authguard import db
from authguard.errors import InternalError
from authguard.models import LoginAttempt, utcnow
from authguard.utils import geolocation

logger = logging.getLogger()

# Failure reasons stored on the ledger
USER_NOT_FOUND = "user_not_found"
ACCOUNT_HARD_LOCKED = "account_hard_locked"
ACCOUNT_SOFT_LOCKED = "account_soft_locked"
ACCOUNT_INACTIVE = "account_inactive"
INVALID_PASSWORD = "invalid_password"
MISSING_TWO_FACTOR_CODE = "missing_two_factor_code"
INVALID_TWO_FACTOR_CODE = "invalid_two_factor_code"
INVALID_REQUEST = "invalid_request"
PASSWORD_COMPLEXITY = "password_complexity"
EMAIL_ALREADY_REGISTERED = "email_already_registered"
INTERNAL_ERROR = "internal_error"

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


class LoginAttemptService:
    """Append-only ledger of login and registration attempts"""

    @staticmethod
    def record(
        user_id,
        email,
        ip_address,
        success,
        reason=None,
        user_agent=None,
        location=None,
    ):
        """Append one attempt. Commits immediately.

        ``reason`` is required for failures and dropped for successes. The
        location is resolved from ``ip_address`` unless given.
        """
        if not success and not reason:
            raise ValueError("A failed attempt needs a failure reason")

        if location is None:
            location = geolocation.resolve(ip_address)

        attempt = LoginAttempt(
            user_id=user_id,
            email=(email or "")[:255],
            ip_address=ip_address or "unknown",
            country=location.country,
            city=location.city,
            success=bool(success),
            failure_reason=None if success else reason,
            user_agent=user_agent[:500] if user_agent else None,
        )
        try:
            logger.info("[DB]: ADD")
            db.session.add(attempt)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"[SERVICE]: Failed to record login attempt: {e}")
            rollbar.report_exc_info()
            raise InternalError() from e
        return attempt

    @staticmethod
    def _clamp(limit):
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            return DEFAULT_LIMIT
        return max(1, min(limit, MAX_LIMIT))

    @staticmethod
    def get_recent(limit=DEFAULT_LIMIT):
        logger.info("[SERVICE]: Getting recent login attempts")
        logger.info("[DB]: QUERY")
        return (
            LoginAttempt.query.order_by(LoginAttempt.created_at.desc())
            .limit(LoginAttemptService._clamp(limit))
            .all()
        )

    @staticmethod
    def get_recent_failures(limit=DEFAULT_LIMIT):
        logger.info("[SERVICE]: Getting recent failed login attempts")
        logger.info("[DB]: QUERY")
        return (
            LoginAttempt.query.filter_by(success=False)
            .order_by(LoginAttempt.created_at.desc())
            .limit(LoginAttemptService._clamp(limit))
            .all()
        )

    @staticmethod
    def get_for_user(user_id, limit=10):
        logger.info(f"[SERVICE]: Getting login attempts for user {user_id}")
        logger.info("[DB]: QUERY")
        return (
            LoginAttempt.query.filter_by(user_id=user_id)
            .order_by(LoginAttempt.created_at.desc())
            .limit(LoginAttemptService._clamp(limit))
            .all()
        )

    @staticmethod
    def count_failures_since(since=None):
        since = since or utcnow() - datetime.timedelta(hours=24)
        return LoginAttempt.query.filter(
            LoginAttempt.success.is_(False), LoginAttempt.created_at >= since
        ).count()

