"""AUTHGUARD ERRORS"""


class Error(Exception):
    status = 400

    def __init__(self, message):
        self.message = message
        super().__init__(message)

    @property
    def serialize(self):
        return {"message": self.message}


class ValidationError(Error):
    """Malformed input. Carries every violated rule, not just the first."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]

    @property
    def serialize(self):
        return {"message": self.message, "errors": self.errors}


class AuthenticationError(Error):
    """Bad credentials. The message never reveals which check failed."""

    status = 401

    def __init__(self, message="Invalid credentials"):
        super().__init__(message)


class TwoFactorRequiredError(AuthenticationError):
    def __init__(self, message="2FA code required"):
        super().__init__(message)

    @property
    def serialize(self):
        return {"message": self.message, "requires_two_factor": True}


class AccountLockedError(Error):
    """Raised when a user account is locked due to too many failed login attempts."""

    status = 403

    def __init__(
        self,
        message: str,
        minutes_remaining: int | None = None,
        lock_type: str = "soft",
    ):
        super().__init__(message)
        self.minutes_remaining = minutes_remaining
        self.lock_type = lock_type

    @property
    def serialize(self):
        data = {
            "message": self.message,
            "error_code": "account_locked",
            "lock_type": self.lock_type,
        }
        if self.minutes_remaining is not None:
            data["minutes_remaining"] = self.minutes_remaining
        return data


class AccountInactiveError(Error):
    status = 403

    def __init__(self, message="Account is inactive"):
        super().__init__(message)


class ConflictError(Error):
    status = 409


class EmailDuplicated(ConflictError):
    pass


class PasswordReused(ConflictError):
    status = 400


class TwoFactorAlreadyEnabled(ConflictError):
    pass


class NotFoundError(Error):
    status = 404


class UserNotFound(NotFoundError):
    pass


class InternalError(Error):
    status = 500

    def __init__(self, message="Internal Server Error"):
        super().__init__(message)
