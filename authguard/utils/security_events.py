"""Security event logging for AuthGuard

Events are written to the ``authguard.utils.security_events`` logger and
forwarded to Rollbar. Codes, passwords and hashes never appear in an event.
"""

from datetime import datetime, UTC
import logging
from typing import Any, Optional

from flask import has_request_context, request
from flask_limiter.util import get_remote_address
import rollbar

logger = logging.getLogger(__name__)

SECURITY_EVENTS = {
    "USER_REGISTERED": "Account registered",
    "LOGIN_SUCCESS": "Login succeeded",
    "LOGIN_FAILURE": "Login failed",
    "ACCOUNT_LOCKED": "Account locked after failed logins",
    "ACCOUNT_UNLOCKED": "Account unlocked by an administrator",
    "SUSPICIOUS_ACTIVITY": "Login far from the previous login origin",
    "PASSWORD_CHANGE": "Password changed",
    "PASSWORD_RESET_FORCED": "Password reset required by an administrator",
    "TWO_FACTOR_ENABLED": "Two-factor authentication enabled",
    "TWO_FACTOR_DISABLED": "Two-factor authentication disabled",
    "ADMIN_ACTION": "Administrative action",
    "RATE_LIMIT_HIT": "Rate limit exceeded",
}


def _request_info():
    if not has_request_context():
        return {}
    return {
        "ip_address": get_remote_address(),
        "user_agent": request.headers.get("User-Agent", "Unknown"),
        "method": request.method,
        "path": request.path,
    }


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    level: str = "warning",
) -> None:
    """Log ``event_type`` locally and report it to Rollbar.

    ``level`` is a logging method name; Rollbar receives ``info`` for info
    events and ``warning`` for everything else.
    """
    if event_type not in SECURITY_EVENTS:
        logger.warning(f"[SECURITY]: Unknown event type {event_type}")

    event = {
        "event_type": event_type,
        "event_description": SECURITY_EVENTS.get(event_type, "Unknown event"),
        "timestamp": datetime.now(UTC).isoformat(),
        "user_id": user_id,
        "user_email": user_email,
        "details": details or {},
        "request_info": _request_info(),
    }
    event = {k: v for k, v in event.items() if v is not None}

    message = f"[SECURITY]: {event_type}"
    if user_email:
        message += f" user={user_email}"
    if details:
        message += f" {details}"
    getattr(logger, level)(message, extra={"security_event": event})

    try:
        rollbar.report_message(
            message=f"Security Event: {event_type}",
            level="info" if level == "info" else "warning",
            extra_data=event,
        )
    except Exception as e:
        logger.error(f"[SECURITY]: Failed to report event to Rollbar: {e}")


def log_authentication_event(
    success: bool,
    email: str,
    reason: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    if success:
        log_security_event("LOGIN_SUCCESS", user_id, email, level="info")
    else:
        log_security_event("LOGIN_FAILURE", user_id, email, {"reason": reason})


def log_account_locked(user_id: str, user_email: str, lock_state: str) -> None:
    log_security_event(
        "ACCOUNT_LOCKED", user_id, user_email, {"lock_state": lock_state}
    )


def log_admin_action(
    admin_user_id: str,
    admin_email: str,
    action: str,
    target_user_id: Optional[str] = None,
) -> None:
    """Audit trail entry for an action taken through the admin endpoints"""
    log_security_event(
        "ADMIN_ACTION",
        admin_user_id,
        admin_email,
        {"action": action, "target_user_id": target_user_id},
        level="info",
    )


def log_suspicious_activity(
    description: str, user_id: Optional[str] = None, user_email: Optional[str] = None
) -> None:
    log_security_event(
        "SUSPICIOUS_ACTIVITY", user_id, user_email, {"description": description}
    )


def log_rate_limit_exceeded(limit_type: str, user_id: Optional[str] = None) -> None:
    log_security_event("RATE_LIMIT_HIT", user_id, details={"limit_type": limit_type})


def log_password_event(
    event_type: str, user_id: str, user_email: str, admin_action: bool = False
) -> None:
    """``PASSWORD_CHANGE`` or ``PASSWORD_RESET_FORCED``"""
    log_security_event(
        event_type,
        user_id,
        user_email,
        {"admin_action": admin_action},
        level="info",
    )
