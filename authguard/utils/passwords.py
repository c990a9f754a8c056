"""Password hashing, complexity and strength utilities"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
import re
import secrets
import string
import threading

import bcrypt

from authguard.config import SETTINGS

logger = logging.getLogger(__name__)

MIN_LENGTH = 8
# bcrypt only accepts the first 72 bytes of input
MAX_BYTES = 72

LOWERCASE = re.compile(r"[a-z]")
UPPERCASE = re.compile(r"[A-Z]")
DIGIT = re.compile(r"[0-9]")
SYMBOL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
REPEATED = re.compile(r"(.)\1{2,}")

GENERATOR_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

STRENGTH_LABELS = (
    (30, "Very Weak"),
    (50, "Weak"),
    (70, "Fair"),
    (85, "Good"),
)


def _password_settings():
    return SETTINGS.get("PASSWORDS", {})


def _max_concurrent_hashes():
    configured = _password_settings().get("MAX_CONCURRENT_HASHES") or 0
    return configured if configured > 0 else (os.cpu_count() or 1)


# bcrypt releases the GIL, so this bounds CPU use across request threads
_hash_slots = threading.BoundedSemaphore(_max_concurrent_hashes())


@dataclass
class PasswordComplexity:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def serialize(self):
        return {"is_valid": self.is_valid, "errors": self.errors}


def hash_password(password: str) -> str:
    if not isinstance(password, str) or len(password) == 0:
        raise ValueError("Password must be a non-empty string")

    rounds = int(_password_settings().get("BCRYPT_ROUNDS", 12))
    with _hash_slots:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Compare ``password`` with a bcrypt hash. Never raises."""
    if not password or not password_hash:
        return False
    if len(password.encode("utf-8")) > MAX_BYTES:
        return False
    try:
        with _hash_slots:
            return bcrypt.checkpw(
                password.encode("utf-8"), password_hash.encode("utf-8")
            )
    except (ValueError, TypeError) as e:
        logger.error(f"[AUTH]: Malformed password hash: {e}")
        return False


def check_complexity(password: str) -> PasswordComplexity:
    """Return every complexity rule ``password`` violates."""
    if not isinstance(password, str):
        return PasswordComplexity(False, ["Password must be a string"])

    errors = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_BYTES:
        errors.append(f"Password must be at most {MAX_BYTES} bytes long")
    if not LOWERCASE.search(password):
        errors.append("Password must contain at least one lowercase letter")
    if not UPPERCASE.search(password):
        errors.append("Password must contain at least one uppercase letter")
    if not DIGIT.search(password):
        errors.append("Password must contain at least one number")
    if not SYMBOL.search(password):
        errors.append("Password must contain at least one special character")

    return PasswordComplexity(len(errors) == 0, errors)


def password_strength(password: str) -> int:
    """Advisory strength score between 0 and 100."""
    if not password:
        return 0

    length = len(password)
    score = 0
    if length >= 8:
        score += 20
    if length >= 12:
        score += 10
    if length >= 16:
        score += 10
    if length >= 20:
        score += 10

    for pattern in (LOWERCASE, UPPERCASE, DIGIT, SYMBOL):
        if pattern.search(password):
            score += 10

    if REPEATED.search(password):
        score -= 10

    return min(max(score, 0), 100)


def strength_label(score: int) -> str:
    for threshold, label in STRENGTH_LABELS:
        if score < threshold:
            return label
    return "Very Strong"


def generate_strong_password(length: int = 16) -> str:
    """Random password that always passes :func:`check_complexity`."""
    if length < MIN_LENGTH:
        raise ValueError(f"Password length must be at least {MIN_LENGTH}")
    if length > MAX_BYTES:
        raise ValueError(f"Password length must be at most {MAX_BYTES}")

    pools = [
        string.ascii_lowercase,
        string.ascii_uppercase,
        string.digits,
        GENERATOR_SYMBOLS,
    ]
    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(pools)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
