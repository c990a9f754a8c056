"""AUTHENTICATION SERVICE

Registration, login, password change and two-factor enrolment. Every login
and registration attempt, whatever its outcome, writes exactly one entry to
the login attempt ledger before returning or raising.
"""

from dataclasses import dataclass
import logging

import rollbar
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from authguard import db
from authguard.config import SETTINGS
from authguard.errors import (
    AccountInactiveError,
    AccountLockedError,
    AuthenticationError,
    EmailDuplicated,
    InternalError,
    PasswordReused,
    TwoFactorAlreadyEnabled,
    TwoFactorRequiredError,
    ValidationError,
)
from authguard.tokens import issue_session_token
from authguard.models import PasswordHistory, User, utcnow
from authguard.services import login_attempt_service as reasons
from authguard.services.login_attempt_service import LoginAttemptService
from authguard.services.user_service import UserService
from authguard.utils import geolocation, lockout, totp
from authguard.utils.database import commit_or_fail
from authguard.utils.passwords import check_complexity, verify_password
from authguard.utils.security_events import (
    log_account_locked,
    log_authentication_event,
    log_password_event,
    log_security_event,
    log_suspicious_activity,
)
from authguard.validators import validate_registration

logger = logging.getLogger()


@dataclass
class LoginResult:
    access_token: str
    user: User
    suspicious_login: bool


@dataclass
class AttemptContext:
    """Where an attempt came from, shared by every ledger write of a request"""

    ip_address: str | None
    user_agent: str | None
    location: geolocation.GeoLocation

    @classmethod
    def build(cls, ip_address, user_agent):
        return cls(ip_address, user_agent, geolocation.resolve(ip_address))

    def record(self, user_id, email, success, reason=None):
        LoginAttemptService.record(
            user_id,
            email,
            self.ip_address,
            success,
            reason=reason,
            user_agent=self.user_agent,
            location=self.location,
        )


def _history_size():
    return int(SETTINGS.get("PASSWORDS", {}).get("HISTORY_SIZE", 5))


def _submitted_email(value):
    return value.strip() if isinstance(value, str) else ""


class AuthService:
    """Authentication orchestration"""

    @staticmethod
    def register(data, ip_address=None, user_agent=None):
        logger.info("[SERVICE]: Registering user")
        context = AttemptContext.build(ip_address, user_agent)
        email = _submitted_email(data.get("email") if isinstance(data, dict) else None)

        try:
            cleaned = validate_registration(data)
        except ValidationError:
            context.record(None, email, False, reasons.INVALID_REQUEST)
            raise
        email = cleaned["email"]

        complexity = check_complexity(cleaned["password"])
        if not complexity.is_valid:
            context.record(None, email, False, reasons.PASSWORD_COMPLEXITY)
            raise ValidationError(
                "Password does not meet complexity requirements",
                errors=complexity.errors,
            )

        if User.query.filter_by(email=email).first():
            context.record(None, email, False, reasons.EMAIL_ALREADY_REGISTERED)
            raise EmailDuplicated(message="Email already registered")

        user = User(
            email=email,
            password=cleaned["password"],
            first_name=cleaned["first_name"],
            last_name=cleaned["last_name"],
        )
        user.password_history.append(PasswordHistory(password_hash=user.password))
        user.last_login = utcnow()
        user.last_login_ip = ip_address
        try:
            logger.info("[DB]: ADD")
            db.session.add(user)
            db.session.commit()
        except IntegrityError as error:
            # Lost a race with a concurrent registration for the same email
            db.session.rollback()
            context.record(None, email, False, reasons.EMAIL_ALREADY_REGISTERED)
            raise EmailDuplicated(message="Email already registered") from error
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error(f"[SERVICE]: Error creating user: {error}")
            rollbar.report_exc_info()
            context.record(None, email, False, reasons.INTERNAL_ERROR)
            raise InternalError() from error

        context.record(user.id, email, True)
        log_security_event(
            "USER_REGISTERED", user_id=str(user.id), user_email=email, level="info"
        )
        return user

    @staticmethod
    def _register_failure(user, context, email, reason):
        """Ledger the failure, then count it against the account.

        Raises the lock error when this failure locked the account, otherwise
        the generic invalid credentials error.
        """
        context.record(user.id, email, False, reason)
        log_authentication_event(False, email, reason, user_id=str(user.id))

        try:
            locked_user = (
                db.session.query(User)
                .filter_by(id=user.id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            previous_state = lockout.lock_state(locked_user)
            state = lockout.apply_failure(locked_user)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.error(f"[AUTH]: Error recording failed login: {error}")
            rollbar.report_exc_info()
            raise InternalError() from error

        if state != previous_state:
            log_account_locked(str(locked_user.id), locked_user.email, state)
            raise lockout.locked_error(locked_user)
        raise AuthenticationError()

    @staticmethod
    def login(email, password, two_factor_code=None, ip_address=None, user_agent=None):
        logger.info("[AUTH]: Login attempt")
        context = AttemptContext.build(ip_address, user_agent)
        submitted = _submitted_email(email)

        if not submitted or not password or not isinstance(password, str):
            context.record(None, submitted, False, reasons.INVALID_REQUEST)
            raise ValidationError("Email and password are required")

        normalized = submitted.lower()
        try:
            logger.info("[DB]: QUERY")
            user = User.query.filter_by(email=normalized).first()
        except SQLAlchemyError as error:
            db.session.rollback()
            rollbar.report_exc_info()
            context.record(None, submitted, False, reasons.INTERNAL_ERROR)
            raise InternalError() from error

        if not user:
            logger.warning("[AUTH]: Failed login - user not found")
            context.record(None, submitted, False, reasons.USER_NOT_FOUND)
            log_authentication_event(False, normalized, reasons.USER_NOT_FOUND)
            raise AuthenticationError()

        try:
            if lockout.check_entry(user):
                commit_or_fail(f"resetting expired soft lock for {user.id}")
        except AccountLockedError as error:
            reason = (
                reasons.ACCOUNT_HARD_LOCKED
                if error.lock_type == "hard"
                else reasons.ACCOUNT_SOFT_LOCKED
            )
            context.record(user.id, submitted, False, reason)
            log_authentication_event(False, normalized, reason, user_id=str(user.id))
            raise

        if not user.is_active:
            context.record(user.id, submitted, False, reasons.ACCOUNT_INACTIVE)
            log_authentication_event(
                False, normalized, reasons.ACCOUNT_INACTIVE, user_id=str(user.id)
            )
            raise AccountInactiveError()

        if not user.check_password(password):
            logger.warning(f"[AUTH]: Failed login - invalid password for {user.id}")
            AuthService._register_failure(
                user, context, submitted, reasons.INVALID_PASSWORD
            )

        if user.two_factor_enabled:
            if two_factor_code is None or not str(two_factor_code).strip():
                context.record(
                    user.id, submitted, False, reasons.MISSING_TWO_FACTOR_CODE
                )
                raise TwoFactorRequiredError()
            if not totp.verify_code(user.two_factor_secret, two_factor_code):
                logger.warning(f"[AUTH]: Failed login - invalid 2FA code for {user.id}")
                AuthService._register_failure(
                    user, context, submitted, reasons.INVALID_TWO_FACTOR_CODE
                )

        previous_location = (
            geolocation.resolve(user.last_login_ip) if user.last_login_ip else None
        )
        suspicious = geolocation.is_suspicious(context.location, previous_location)
        if suspicious:
            log_suspicious_activity(
                f"Login from {context.location.country} far from previous login "
                f"in {previous_location.country}",
                user_id=str(user.id),
                user_email=user.email,
            )

        context.record(user.id, submitted, True)

        lockout.reset(user)
        user.last_login = utcnow()
        user.last_login_ip = ip_address
        commit_or_fail(f"updating login state for {user.id}")
        log_authentication_event(True, user.email, user_id=str(user.id))

        return LoginResult(
            access_token=issue_session_token(user),
            user=user,
            suspicious_login=suspicious,
        )

    @staticmethod
    def change_password(user, current_password, new_password):
        logger.info(f"[SERVICE]: Changing password for user {user.id}")
        if not user.check_password(current_password):
            raise AuthenticationError("Current password is incorrect")

        complexity = check_complexity(new_password)
        if not complexity.is_valid:
            raise ValidationError(
                "Password does not meet complexity requirements",
                errors=complexity.errors,
            )

        user = UserService.get_user_for_update(user.id)
        size = _history_size()
        for entry in user.password_history.limit(size):
            if verify_password(new_password, entry.password_hash):
                db.session.rollback()
                raise PasswordReused(
                    message=f"Cannot reuse any of your last {size} passwords"
                )

        user.password = user.set_password(new_password)
        user.force_password_reset = False
        user.password_history.append(PasswordHistory(password_hash=user.password))
        commit_or_fail(f"changing password for {user.id}")

        log_password_event("PASSWORD_CHANGE", str(user.id), user.email)
        return user

    @staticmethod
    def setup_two_factor(user):
        """Store a new pending secret. Refused while two-factor is enabled."""
        logger.info(f"[SERVICE]: Setting up two-factor for user {user.id}")
        if user.two_factor_enabled:
            raise TwoFactorAlreadyEnabled(
                message="Two-factor authentication is already enabled. "
                "Disable it before setting up a new secret."
            )

        setup = totp.generate_secret(user.email)
        user.two_factor_secret = setup.secret
        commit_or_fail(f"storing two-factor secret for {user.id}")
        return {
            "secret": setup.secret,
            "provisioning_uri": setup.provisioning_uri,
            "qr_code": totp.qr_code_data_url(setup.provisioning_uri),
        }

    @staticmethod
    def enable_two_factor(user, code):
        logger.info(f"[SERVICE]: Enabling two-factor for user {user.id}")
        if user.two_factor_enabled:
            raise TwoFactorAlreadyEnabled(
                message="Two-factor authentication is already enabled"
            )
        if not user.two_factor_secret:
            raise ValidationError("Two-factor setup has not been started")
        if not totp.verify_code(user.two_factor_secret, code):
            raise ValidationError("Invalid 2FA code")

        user.two_factor_enabled = True
        commit_or_fail(f"enabling two-factor for {user.id}")
        log_security_event(
            "TWO_FACTOR_ENABLED", user_id=str(user.id), user_email=user.email, level="info"
        )
        return user

    @staticmethod
    def disable_two_factor(user, password, code):
        logger.info(f"[SERVICE]: Disabling two-factor for user {user.id}")
        if not user.two_factor_enabled:
            raise ValidationError("Two-factor authentication is not enabled")
        if not user.check_password(password):
            raise AuthenticationError()
        if not totp.verify_code(user.two_factor_secret, code):
            raise ValidationError("Invalid 2FA code")

        user.two_factor_enabled = False
        user.two_factor_secret = None
        commit_or_fail(f"disabling two-factor for {user.id}")
        log_security_event(
            "TWO_FACTOR_DISABLED", user_id=str(user.id), user_email=user.email, level="info"
        )
        return user
