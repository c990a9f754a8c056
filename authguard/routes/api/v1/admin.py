"""Administrative routes for the AuthGuard API."""

import logging

from flask import jsonify, request
from flask_jwt_extended import current_user

from authguard.errors import InternalError, NotFoundError
from authguard.routes.api.v1 import endpoints, error_from
from authguard.services import LoginAttemptService, UserService
from authguard.services.login_attempt_service import DEFAULT_LIMIT
from authguard.utils.permissions import admin_required

logger = logging.getLogger()


@endpoints.route("/admin/users", strict_slashes=False, methods=["GET"])
@admin_required
def get_users():
    """
    List all accounts, newest first.

    **Authentication**: JWT token of an administrator
    """
    logger.info("[ROUTER]: Getting all users")
    users = UserService.get_users()
    return jsonify(data=[user.serialize(include=["lock_state"]) for user in users]), 200


@endpoints.route("/admin/users/<user_id>", strict_slashes=False, methods=["GET"])
@admin_required
def get_user(user_id):
    """
    Get one account with its ten most recent login attempts.

    **Error Responses**:
    - `404 Not Found`: No account with that id
    """
    logger.info(f"[ROUTER]: Getting user {user_id}")
    try:
        data = UserService.get_user_detail(user_id)
    except (NotFoundError, InternalError) as e:
        return error_from(e)
    return jsonify(data=data), 200


@endpoints.route("/admin/users/<user_id>/unlock", strict_slashes=False, methods=["POST"])
@admin_required
def unlock_user(user_id):
    """
    Clear soft and hard locks and the failed attempt counter of an account.

    **Response**: the updated account
    """
    logger.info(f"[ROUTER]: Unlocking user {user_id}")
    try:
        user = UserService.unlock_user(user_id, current_user)
    except (NotFoundError, InternalError) as e:
        return error_from(e)
    return jsonify(data=user.serialize(include=["lock_state"])), 200


@endpoints.route(
    "/admin/users/<user_id>/force-reset", strict_slashes=False, methods=["POST"]
)
@admin_required
def force_password_reset(user_id):
    """Require the account to change its password"""
    logger.info(f"[ROUTER]: Forcing password reset for user {user_id}")
    try:
        user = UserService.force_password_reset(user_id, current_user)
    except (NotFoundError, InternalError) as e:
        return error_from(e)
    return jsonify(data=user.serialize(include=["lock_state"])), 200


@endpoints.route("/admin/login-attempts", strict_slashes=False, methods=["GET"])
@admin_required
def get_login_attempts():
    """
    Most recent login attempts.

    **Query Parameters**:
    - `limit`: Number of attempts to return (default 50, max 500)
    """
    limit = request.args.get("limit", DEFAULT_LIMIT)
    attempts = LoginAttemptService.get_recent(limit)
    return jsonify(data=[attempt.serialize() for attempt in attempts]), 200


@endpoints.route("/admin/login-attempts/failed", strict_slashes=False, methods=["GET"])
@admin_required
def get_failed_login_attempts():
    """Most recent failed login attempts (`limit` as for `/admin/login-attempts`)"""
    limit = request.args.get("limit", DEFAULT_LIMIT)
    attempts = LoginAttemptService.get_recent_failures(limit)
    return jsonify(data=[attempt.serialize() for attempt in attempts]), 200


@endpoints.route("/admin/stats", strict_slashes=False, methods=["GET"])
@admin_required
def get_stats():
    """
    Account statistics.

    **Response Schema**:
    ```json
    {
      "data": {
        "total_users": 10,
        "active_users": 9,
        "locked_users": 1,
        "two_factor_users": 3,
        "recent_failed_attempts": 4,
        "lock_percentage": 10.0,
        "two_factor_percentage": 30.0
      }
    }
    ```

    `locked_users` counts hard locked accounts; `recent_failed_attempts`
    covers the last 24 hours.
    """
    logger.info("[ROUTER]: Getting stats")
    return jsonify(data=UserService.get_stats()), 200
