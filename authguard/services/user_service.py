"""USER SERVICE"""

import logging
from uuid import UUID

import rollbar
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from authguard import db
from authguard.errors import (
    EmailDuplicated,
    InternalError,
    UserNotFound,
    ValidationError,
)
from authguard.models import PasswordHistory, User
from authguard.services.login_attempt_service import LoginAttemptService
from authguard.utils import lockout
from authguard.utils.database import commit_or_fail
from authguard.utils.passwords import check_complexity, generate_strong_password
from authguard.utils.security_events import (
    log_admin_action,
    log_password_event,
    log_security_event,
)

logger = logging.getLogger()


def _percentage(part, total):
    if not total:
        return 0.0
    return round(part / total * 100, 2)


class UserService:
    """Account lookup and administration"""

    @staticmethod
    def get_user(user_id):
        logger.info(f"[SERVICE]: Getting user {user_id}")
        logger.info("[DB]: QUERY")
        try:
            if isinstance(user_id, UUID):
                user = db.session.get(User, user_id)
            else:
                user = db.session.get(User, UUID(str(user_id)))
        except ValueError:
            user = User.query.filter_by(email=str(user_id).strip().lower()).first()
        except SQLAlchemyError as error:
            rollbar.report_exc_info()
            raise InternalError() from error
        if not user:
            raise UserNotFound(message=f"User with id {user_id} does not exist")
        return user

    @staticmethod
    def get_user_for_update(user_id):
        """Load a user row holding a row lock until the next commit"""
        user = UserService.get_user(user_id)
        return (
            db.session.query(User)
            .filter_by(id=user.id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    @staticmethod
    def get_users():
        logger.info("[SERVICE]: Getting users")
        logger.info("[DB]: QUERY")
        return User.query.order_by(User.created_at.desc()).all()

    @staticmethod
    def get_user_detail(user_id):
        """Sanitized account plus its ten most recent login attempts"""
        user = UserService.get_user(user_id)
        data = user.serialize(include=["lock_state"])
        data["login_attempts"] = [
            attempt.serialize()
            for attempt in LoginAttemptService.get_for_user(user.id, limit=10)
        ]
        return data

    @staticmethod
    def unlock_user(user_id, admin):
        logger.info(f"[SERVICE]: Unlocking user {user_id}")
        user = UserService.get_user_for_update(user_id)
        previous_state = lockout.lock_state(user)
        lockout.admin_unlock(user)
        commit_or_fail(f"unlocking user {user_id}")

        log_admin_action(str(admin.id), admin.email, "unlock_user", str(user.id))
        log_security_event(
            "ACCOUNT_UNLOCKED",
            user_id=str(user.id),
            user_email=user.email,
            details={"previous_state": previous_state, "unlocked_by": str(admin.id)},
            level="info",
        )
        return user

    @staticmethod
    def force_password_reset(user_id, admin):
        logger.info(f"[SERVICE]: Forcing password reset for user {user_id}")
        user = UserService.get_user_for_update(user_id)
        user.force_password_reset = True
        commit_or_fail(f"forcing password reset for user {user_id}")

        log_admin_action(str(admin.id), admin.email, "force_password_reset", str(user.id))
        log_password_event(
            "PASSWORD_RESET_FORCED", str(user.id), user.email, admin_action=True
        )
        return user

    @staticmethod
    def get_stats():
        logger.info("[SERVICE]: Computing account statistics")
        logger.info("[DB]: QUERY")
        total_users = User.query.count()
        active_users = User.query.filter(User.is_active.is_(True)).count()
        locked_users = User.query.filter(User.is_hard_locked.is_(True)).count()
        two_factor_users = User.query.filter(User.two_factor_enabled.is_(True)).count()
        return {
            "total_users": total_users,
            "active_users": active_users,
            "locked_users": locked_users,
            "two_factor_users": two_factor_users,
            "recent_failed_attempts": LoginAttemptService.count_failures_since(),
            "lock_percentage": _percentage(locked_users, total_users),
            "two_factor_percentage": _percentage(two_factor_users, total_users),
        }

    @staticmethod
    def create_admin(email, password=None, first_name="Admin", last_name="User"):
        """Create an administrator, generating a password when none is given.

        Returns ``(user, password)``.
        """
        email = email.strip().lower()
        logger.info(f"[SERVICE]: Creating admin user {email}")
        if User.query.filter_by(email=email).first():
            raise EmailDuplicated(message=f"User with email {email} already exists")

        if password:
            complexity = check_complexity(password)
            if not complexity.is_valid:
                raise ValidationError(
                    "Password does not meet complexity requirements",
                    errors=complexity.errors,
                )
        else:
            password = generate_strong_password()
        user = User(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            is_admin=True,
        )
        user.password_history.append(PasswordHistory(password_hash=user.password))
        try:
            logger.info("[DB]: ADD")
            db.session.add(user)
            db.session.commit()
        except IntegrityError as error:
            db.session.rollback()
            raise EmailDuplicated(
                message=f"User with email {email} already exists"
            ) from error
        except SQLAlchemyError as error:
            db.session.rollback()
            rollbar.report_exc_info()
            raise InternalError() from error
        return user, password
