"""AUTHGUARD SERVICES MODULE"""

import logging
import sys

logger = logging.getLogger()


def handle_exception(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


sys.excepthook = handle_exception

from authguard.services.login_attempt_service import LoginAttemptService  # noqa: E402
from authguard.services.user_service import UserService  # noqa: E402

# Import last, it depends on both services above
from authguard.services.auth_service import AuthService  # noqa: E402, isort:skip

__all__ = [
    "AuthService",
    "LoginAttemptService",
    "UserService",
]
