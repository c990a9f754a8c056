"""Account lockout state machine

An account is in one of three states:

* ``UNLOCKED``
* ``SOFT_LOCKED``: too many failures, clears itself once ``locked_until`` passes
* ``HARD_LOCKED``: even more failures, cleared only by an administrator

Hard lock takes precedence over soft lock in every decision. The functions in
this module operate on ``User`` rows and leave committing to the caller. Callers of
:func:`apply_failure` must hold a row lock on the user.
"""

from __future__ import annotations

from dataclasses import dataclass
import datetime
import logging
import math

from authguard.config import SETTINGS
from authguard.errors import AccountLockedError
from authguard.models import utcnow

logger = logging.getLogger(__name__)

UNLOCKED = "unlocked"
SOFT_LOCKED = "soft_locked"
HARD_LOCKED = "hard_locked"

HARD_LOCK_MESSAGE = "Account is locked. Please contact an administrator."


@dataclass(frozen=True)
class LockoutPolicy:
    soft_lock_attempts: int = 3
    hard_lock_attempts: int = 5
    lock_duration: datetime.timedelta = datetime.timedelta(minutes=30)

    @classmethod
    def from_settings(cls, settings=None):
        config = (settings if settings is not None else SETTINGS).get("LOCKOUT", {})
        return cls(
            soft_lock_attempts=int(config.get("SOFT_LOCK_ATTEMPTS", 3)),
            hard_lock_attempts=int(config.get("HARD_LOCK_ATTEMPTS", 5)),
            lock_duration=datetime.timedelta(
                minutes=int(config.get("LOCK_DURATION_MINUTES", 30))
            ),
        )


def lock_state(user) -> str:
    if user.is_hard_locked:
        return HARD_LOCKED
    if user.is_soft_locked:
        return SOFT_LOCKED
    return UNLOCKED


def minutes_remaining(user, now=None) -> int:
    if not user.locked_until:
        return 0
    now = now or utcnow()
    seconds = (user.locked_until - now).total_seconds()
    return max(0, math.ceil(seconds / 60))


def soft_lock_message(minutes: int) -> str:
    return f"Account locked. Try again in {minutes} minutes."


def locked_error(user, now=None) -> AccountLockedError:
    """The user-facing error for an account that is currently locked."""
    if user.is_hard_locked:
        return AccountLockedError(HARD_LOCK_MESSAGE, lock_type="hard")
    minutes = minutes_remaining(user, now)
    return AccountLockedError(
        soft_lock_message(minutes), minutes_remaining=minutes, lock_type="soft"
    )


def check_entry(user, now=None) -> bool:
    """Gate a login attempt on the account's lock state.

    Raises :class:`AccountLockedError` while hard locked, or while soft locked
    and ``locked_until`` is still in the future. An expired soft lock is reset
    in place; the return value tells the caller whether that happened so the
    change can be persisted.
    """
    now = now or utcnow()
    if user.is_hard_locked:
        raise locked_error(user, now)

    if user.is_soft_locked:
        if user.locked_until and user.locked_until > now:
            raise locked_error(user, now)
        logger.info(f"[LOCKOUT]: Soft lock expired for user {user.id}")
        reset(user)
        return True

    return False


def apply_failure(user, policy: LockoutPolicy | None = None, now=None) -> str:
    """Count one failed verification and move to the matching state.

    ``user`` must already be locked for update by the caller. Returns the
    resulting lock state.
    """
    policy = policy or LockoutPolicy.from_settings()
    now = now or utcnow()

    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

    if user.failed_login_attempts >= policy.hard_lock_attempts:
        user.is_hard_locked = True
        user.locked_until = now + policy.lock_duration
        logger.warning(
            f"[LOCKOUT]: User {user.id} hard locked after "
            f"{user.failed_login_attempts} failed attempts"
        )
    elif user.failed_login_attempts >= policy.soft_lock_attempts:
        user.is_soft_locked = True
        user.locked_until = now + policy.lock_duration
        logger.warning(
            f"[LOCKOUT]: User {user.id} soft locked after "
            f"{user.failed_login_attempts} failed attempts"
        )

    return lock_state(user)


def reset(user):
    """Clear the counter and the soft lock. Hard lock is left untouched."""
    user.failed_login_attempts = 0
    user.is_soft_locked = False
    user.locked_until = None


def admin_unlock(user):
    """Clear both lock tiers, the counter and the expiry."""
    user.failed_login_attempts = 0
    user.is_soft_locked = False
    user.is_hard_locked = False
    user.locked_until = None
