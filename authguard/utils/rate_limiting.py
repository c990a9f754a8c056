"""Rate limiting utilities for the AuthGuard API

Every endpoint gets the Flask-Limiter default limits. Login additionally has a
per client IP limit that is checked before any credential check runs. Counters
live in the limiter storage (Redis in production, memory for tests and single
process development).
"""

import logging
import math
import time

from flask import current_app, jsonify, request
from flask_jwt_extended import get_current_user, verify_jwt_in_request
from flask_limiter.util import get_remote_address
import rollbar

from authguard.config import SETTINGS
from authguard.utils.permissions import is_admin
from authguard.utils.security_events import log_rate_limit_exceeded

logger = logging.getLogger(__name__)

LOGIN_LIMIT_MESSAGE = "Too many login attempts, please try again later"


class RateLimitConfig:
    """Helper class to centralize rate limit configuration."""

    @classmethod
    def _get_config(cls):
        """Get rate limiting config from Flask app config or fallback to SETTINGS"""
        try:
            # Try to get from Flask app config first (for testing)
            return current_app.config.get("RATE_LIMITING", {})
        except RuntimeError:
            # Fallback to SETTINGS if no app context
            return SETTINGS.get("RATE_LIMITING", {})

    @classmethod
    def is_enabled(cls):
        """Check if rate limiting is globally enabled."""
        return cls._get_config().get("ENABLED", True)

    @classmethod
    def get_storage_uri(cls):
        """Get the storage URI for the rate limiter."""
        config = cls._get_config()
        return config.get("STORAGE_URI") or SETTINGS.get("REDIS_URL") or "memory://"

    @classmethod
    def get_default_limits(cls):
        """Get the global default rate limits."""
        return cls._get_config().get("DEFAULT_LIMITS", ["1000 per hour"])

    @classmethod
    def get_user_creation_limits(cls):
        """Get user creation rate limits."""
        return cls._get_config().get("USER_CREATION_LIMITS", ["10 per hour"])

    @classmethod
    def get_login_window_ms(cls):
        return int(cls._get_config().get("LOGIN_WINDOW_MS", 15 * 60 * 1000))

    @classmethod
    def get_login_max_attempts(cls):
        return int(cls._get_config().get("LOGIN_MAX_ATTEMPTS", 5))

    @classmethod
    def get_login_limit(cls):
        """Login limit as a limit string, e.g. ``5 per 900 seconds``"""
        window = max(1, math.ceil(cls.get_login_window_ms() / 1000))
        return f"{cls.get_login_max_attempts()} per {window} seconds"


def is_rate_limiting_disabled():
    """Helper function for exempt_when parameter to check if rate limiting is
    disabled"""
    enabled = RateLimitConfig.is_enabled()
    # Also check if Flask-Limiter is globally disabled
    from authguard import limiter

    if hasattr(limiter, "enabled"):
        enabled = enabled and limiter.enabled
    return not enabled


def get_user_id_or_ip():
    """
    Get user ID for authenticated requests, IP address for anonymous requests.
    Returns None if user should be exempt from rate limiting.
    """
    try:
        verify_jwt_in_request(optional=True)
        current_user = get_current_user()
        if current_user:
            # Exempt administrators from rate limiting
            if is_admin(current_user):
                return None
            return f"user:{current_user.id}"
    except Exception as e:
        logger.debug(f"Failed to get current user for rate limiting: {e}")
    return f"ip:{get_remote_address()}"


def create_rate_limit_response(retry_after=None, detail=None):
    """
    Create a standardized rate limit exceeded response and send security event
    notification
    """
    ip_address = get_remote_address()
    endpoint = request.path or request.endpoint

    try:
        rollbar_data = {
            "ip_address": ip_address,
            "endpoint": endpoint,
            "user_agent": request.headers.get("User-Agent"),
            "method": request.method,
            "retry_after": retry_after,
        }
        message = f"Rate limit applied to IP {ip_address} on endpoint {endpoint}"
        rollbar.report_message(
            message=message, level="warning", extra_data=rollbar_data
        )
        logger.warning(f"Rate limit applied: {message}")
    except Exception as e:
        # Don't let Rollbar errors prevent the rate limit response
        logger.error(f"Failed to send rate limit notification to Rollbar: {e}")

    response_data = {
        "status": 429,
        "detail": detail or "Rate limit exceeded. Please try again later.",
        "error_code": "RATE_LIMIT_EXCEEDED",
    }

    if retry_after:
        response_data["retry_after"] = retry_after

    response = jsonify(response_data)
    response.status_code = 429

    if retry_after:
        response.headers["Retry-After"] = str(retry_after)

    return response


def _seconds_until_reset(request_limit):
    reset_at = getattr(request_limit, "reset_at", None)
    if not reset_at:
        return None
    return max(1, math.ceil(reset_at - time.time()))


def rate_limit_error_handler(error):
    """Custom error handler for Flask-Limiter breaches"""
    retry_after = _seconds_until_reset(error)
    logger.info(f"Rate limit exceeded: {error}")
    log_rate_limit_exceeded(request.path or "unknown_endpoint")
    detail = LOGIN_LIMIT_MESSAGE if request.endpoint == "endpoints.login" else None
    return create_rate_limit_response(retry_after=retry_after, detail=detail)
