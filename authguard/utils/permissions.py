"""Permission utility functions"""

from __future__ import annotations

from functools import wraps

from flask_jwt_extended import current_user, jwt_required


def is_admin(user) -> bool:
    """Check if user is an active administrator."""
    if user is None:
        return False
    return bool(user.is_admin) and bool(user.is_active)


def admin_required(func):
    """Require a valid session token belonging to an administrator.

    Returns 403 for authenticated non-admins.
    """

    @wraps(func)
    @jwt_required()
    def wrapper(*args, **kwargs):
        if not is_admin(current_user):
            from authguard.routes.api.v1 import error

            return error(status=403, detail="Forbidden")
        return func(*args, **kwargs)

    return wrapper
