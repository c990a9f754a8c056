"""Authentication routes for the AuthGuard API."""

import logging

from flask import current_app, jsonify, request
from flask_jwt_extended import current_user, jwt_required
from flask_limiter.util import get_remote_address

from authguard import limiter
from authguard.errors import (
    AccountInactiveError,
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    InternalError,
    ValidationError,
)
from authguard.routes.api.v1 import client_info, endpoints, error, error_from
from authguard.services import AuthService
from authguard.utils.passwords import (
    check_complexity,
    password_strength,
    strength_label,
)
from authguard.utils.rate_limiting import (
    RateLimitConfig,
    get_user_id_or_ip,
    is_rate_limiting_disabled,
)

logger = logging.getLogger()


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@endpoints.route("/auth/register", strict_slashes=False, methods=["POST"])
@limiter.limit(
    lambda: ";".join(RateLimitConfig.get_user_creation_limits()) or "10 per hour",
    key_func=get_user_id_or_ip,
    exempt_when=is_rate_limiting_disabled,
)
def register():
    """
    Register a new account.

    **Authentication**: None

    **Request Schema**:
    ```json
    {
      "email": "user@example.com",
      "password": "Str0ng!Pass",
      "first_name": "Ada",
      "last_name": "Lovelace"
    }
    ```

    **Response**: `201 Created` with `{"data": <user>}`. The password hash and
    two-factor secret are never returned.

    **Error Responses**:
    - `400 Bad Request`: Missing fields or password complexity violations, with
      every violated rule listed in `errors`
    - `409 Conflict`: Email already registered
    - `500 Internal Server Error`: Account could not be stored
    """
    logger.info("[ROUTER]: Registering user")
    ip_address, user_agent = client_info()
    try:
        user = AuthService.register(
            _json_body(), ip_address=ip_address, user_agent=user_agent
        )
    except (ValidationError, ConflictError) as e:
        logger.info("[ROUTER]: Registration rejected: " + e.message)
        return error_from(e)
    except InternalError as e:
        logger.error("[ROUTER]: Registration failed")
        return error_from(e)
    return jsonify(data=user.serialize()), 201


@endpoints.route("/auth/login", strict_slashes=False, methods=["POST"])
@limiter.limit(
    RateLimitConfig.get_login_limit,
    key_func=get_remote_address,
    exempt_when=is_rate_limiting_disabled,
)
def login():
    """
    Authenticate with email, password and, when enabled, a TOTP code.

    **Authentication**: None. Limited per client IP before any credential
    check.

    **Request Schema**:
    ```json
    {
      "email": "user@example.com",
      "password": "Str0ng!Pass",
      "two_factor_code": "123456"
    }
    ```

    **Response Schema**:
    ```json
    {
      "access_token": "<jwt>",
      "token_type": "bearer",
      "expires_in": 86400,
      "user": {"id": "...", "email": "user@example.com"},
      "suspicious_login": false
    }
    ```

    **Error Responses**:
    - `400 Bad Request`: Email or password missing
    - `401 Unauthorized`: Invalid credentials. When two-factor is enabled and
      no code was sent the body carries `requires_two_factor: true`
    - `403 Forbidden`: Account locked (`error_code: account_locked`, with
      `lock_type` and, for soft locks, `minutes_remaining`) or inactive
    - `429 Too Many Requests`: Login rate limit exceeded
    - `500 Internal Server Error`: Storage failure; the login is denied
    """
    logger.info("[ROUTER]: Login attempt")
    ip_address, user_agent = client_info()
    body = _json_body()
    try:
        result = AuthService.login(
            body.get("email"),
            body.get("password"),
            two_factor_code=body.get("two_factor_code"),
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except (
        ValidationError,
        AuthenticationError,
        AccountLockedError,
        AccountInactiveError,
    ) as e:
        return error_from(e)
    except InternalError as e:
        logger.error("[ROUTER]: Login failed closed")
        return error_from(e)

    expires = current_app.config.get("JWT_ACCESS_TOKEN_EXPIRES")
    return jsonify(
        {
            "access_token": result.access_token,
            "token_type": "bearer",
            "expires_in": int(expires.total_seconds()) if expires else None,
            "user": result.user.serialize(),
            "suspicious_login": result.suspicious_login,
        }
    ), 200


@endpoints.route("/auth/password-strength", strict_slashes=False, methods=["POST"])
def check_password_strength():
    """
    Score a candidate password.

    The strength score (0-100) is advisory and never blocks a password that
    passes the complexity rules.

    **Response Schema**:
    ```json
    {
      "data": {
        "strength": 70,
        "label": "Good",
        "complexity": {"is_valid": true, "errors": []}
      }
    }
    ```
    """
    password = _json_body().get("password")
    if not isinstance(password, str) or not password:
        return error(status=400, detail="Password is required")

    score = password_strength(password)
    return jsonify(
        data={
            "strength": score,
            "label": strength_label(score),
            "complexity": check_complexity(password).serialize(),
        }
    ), 200


@endpoints.route("/auth/me", strict_slashes=False, methods=["GET"])
@jwt_required()
def get_me():
    """Return the authenticated account"""
    return jsonify(data=current_user.serialize()), 200


@endpoints.route("/auth/change-password", strict_slashes=False, methods=["POST"])
@jwt_required()
def change_password():
    """
    Change the current user's password.

    **Authentication**: JWT token required

    **Request Schema**:
    ```json
    {
      "current_password": "Str0ng!Pass",
      "new_password": "Str0nger!Pass2"
    }
    ```

    The new password must pass the complexity rules and must not match any of
    the last five passwords of the account. A successful change clears the
    force-password-reset flag.

    **Error Responses**:
    - `400 Bad Request`: Missing fields, complexity violations or password reuse
    - `401 Unauthorized`: Current password is incorrect
    """
    logger.info("[ROUTER]: Changing password")
    body = _json_body()
    current_password = body.get("current_password")
    new_password = body.get("new_password")

    if not current_password or not new_password:
        return error(
            status=400, detail="current_password and new_password are required"
        )

    try:
        user = AuthService.change_password(current_user, current_password, new_password)
    except (AuthenticationError, ValidationError, ConflictError) as e:
        logger.info("[ROUTER]: " + e.message)
        return error_from(e)
    except InternalError as e:
        return error_from(e)
    return jsonify(data=user.serialize()), 200


@endpoints.route("/auth/2fa/setup", strict_slashes=False, methods=["POST"])
@jwt_required()
def setup_two_factor():
    """
    Start two-factor enrolment.

    Generates a new secret and returns it with its provisioning URI and a QR
    code (PNG data URL). Two-factor stays disabled until `/auth/2fa/enable`
    confirms a code. Refused with `409` while two-factor is already enabled.
    """
    logger.info("[ROUTER]: Setting up two-factor")
    try:
        data = AuthService.setup_two_factor(current_user)
    except (ConflictError, InternalError) as e:
        return error_from(e)
    return jsonify(data=data), 200


@endpoints.route("/auth/2fa/enable", strict_slashes=False, methods=["POST"])
@jwt_required()
def enable_two_factor():
    """Confirm a code from the pending secret and turn two-factor on"""
    logger.info("[ROUTER]: Enabling two-factor")
    code = _json_body().get("two_factor_code")
    if not code:
        return error(status=400, detail="two_factor_code is required")

    try:
        user = AuthService.enable_two_factor(current_user, code)
    except (ValidationError, ConflictError, InternalError) as e:
        return error_from(e)
    return jsonify(data=user.serialize()), 200


@endpoints.route("/auth/2fa/disable", strict_slashes=False, methods=["POST"])
@jwt_required()
def disable_two_factor():
    """Turn two-factor off. Requires the password and a current code."""
    logger.info("[ROUTER]: Disabling two-factor")
    body = _json_body()
    password = body.get("password")
    code = body.get("two_factor_code")
    if not password or not code:
        return error(status=400, detail="password and two_factor_code are required")

    try:
        user = AuthService.disable_two_factor(current_user, password, code)
    except (ValidationError, AuthenticationError, InternalError) as e:
        return error_from(e)
    return jsonify(data=user.serialize()), 200
