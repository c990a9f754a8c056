"""Time-based one-time password helpers"""

from __future__ import annotations

import base64
from dataclasses import dataclass
import io
import logging

import pyotp
import qrcode

from authguard.config import SETTINGS

logger = logging.getLogger(__name__)


@dataclass
class TwoFactorSetup:
    secret: str
    provisioning_uri: str


def _two_factor_settings():
    return SETTINGS.get("TWO_FACTOR", {})


def _build_totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(secret)


def _clean_code(code) -> str:
    return "".join(str(code).split())


def generate_secret(label: str) -> TwoFactorSetup:
    """Fresh base32 secret with its otpauth:// provisioning URI."""
    secret = pyotp.random_base32()
    issuer = _two_factor_settings().get("ISSUER", "Secure App")
    uri = _build_totp(secret).provisioning_uri(name=label, issuer_name=issuer)
    return TwoFactorSetup(secret=secret, provisioning_uri=uri)


def qr_code_data_url(provisioning_uri: str) -> str:
    """Render the provisioning URI as a base64 PNG data URL"""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(provisioning_uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    img_base64 = base64.b64encode(buffer.getvalue()).decode()

    return f"data:image/png;base64,{img_base64}"


def verify_code(secret: str | None, code, tolerance_steps: int | None = None) -> bool:
    """Check a 30 second TOTP code, accepting ``tolerance_steps`` steps of drift
    on either side of the current one."""
    if not secret or code is None:
        return False
    cleaned = _clean_code(code)
    if not cleaned.isdigit():
        return False
    if tolerance_steps is None:
        tolerance_steps = _two_factor_settings().get("VALID_WINDOW", 2)
    try:
        return bool(_build_totp(secret).verify(cleaned, valid_window=tolerance_steps))
    except (ValueError, TypeError) as e:
        # pyotp raises on secrets that are not valid base32
        logger.error(f"[AUTH]: Invalid two-factor secret: {e}")
        return False
