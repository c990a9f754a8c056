"""AUTHGUARD VALIDATORS"""

import re
import unicodedata

import bleach

from authguard.errors import ValidationError

EMAIL_REGEX = re.compile(r"^[A-Za-z0-9\.\+_-]+@[A-Za-z0-9\._-]+\.[a-zA-Z]*$")


def sanitize_text(text, max_length=None):
    """
    Sanitize text input while preserving international characters
    """
    if not text:
        return text

    text = str(text).strip()

    # Remove all HTML tags but preserve international characters
    text = bleach.clean(text, tags=[], strip=True)

    dangerous_patterns = [
        r"<script[^>]*>.*?</script>",
        r"javascript:",
        r"vbscript:",
        r"on\w+\s*=",  # event handlers like onclick=
        r"data:text/html",
    ]

    for pattern in dangerous_patterns:
        if re.search(pattern, text, re.IGNORECASE | re.DOTALL):
            raise ValueError("Invalid content detected")

    text = unicodedata.normalize("NFC", text)

    if max_length and len(text) > max_length:
        text = text[:max_length].strip()

    return text


def validate_name(name, field="Name"):
    """
    Validate names with international character support
    """
    if not name or not str(name).strip():
        raise ValueError(f"{field} is required")

    clean_name = sanitize_text(name, max_length=100)

    if len(clean_name.strip()) < 1:
        raise ValueError(f"{field} cannot be empty")

    for char in clean_name:
        if not (
            unicodedata.category(char).startswith("L")  # Letters
            or unicodedata.category(char).startswith("M")  # Marks (accents, etc.)
            or char in " '-."  # Allowed punctuation
            or unicodedata.category(char) == "Zs"
        ):  # Spaces
            raise ValueError(f"{field} contains invalid characters")

    return clean_name


def validate_email(email):
    """
    Validate and normalize email addresses
    """
    if not email or not isinstance(email, str):
        raise ValueError("Email is required")

    email = email.strip().lower()

    if len(email) > 254:  # RFC 5321 limit
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(email):
        raise ValueError("Invalid email format")

    return email


def validate_registration(data):
    """Check the shape of a registration payload.

    Returns a cleaned copy. Raises :class:`ValidationError` listing every
    problem found.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body")

    errors = []
    cleaned = {}

    try:
        cleaned["email"] = validate_email(data.get("email"))
    except ValueError as e:
        errors.append(str(e))

    for key, label in (("first_name", "First name"), ("last_name", "Last name")):
        try:
            cleaned[key] = validate_name(data.get(key), field=label)
        except ValueError as e:
            errors.append(str(e))

    password = data.get("password")
    if not password or not isinstance(password, str):
        errors.append("Password is required")
    else:
        cleaned["password"] = password

    if errors:
        raise ValidationError("Validation failed", errors=errors)

    return cleaned
