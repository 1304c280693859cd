import base64
import hashlib
import hmac
import io
import re
from typing import Iterable, Optional

import pyotp
import qrcode

TOTP_PATTERN = re.compile(r"^\d{6}$")
BACKUP_CODE_PATTERN = re.compile(r"^[0-9A-Fa-f]{8}$")


def totp_from_secret(secret: str, issuer: str | None = None) -> pyotp.TOTP:
    return pyotp.TOTP(secret, issuer=issuer)


def is_totp_format(code: str | None) -> bool:
    return bool(code) and TOTP_PATTERN.match(code) is not None


def is_backup_code_format(code: str | None) -> bool:
    return bool(code) and BACKUP_CODE_PATTERN.match(code) is not None


def normalize_backup_code(code: str) -> str:
    return code.strip().upper()


def verify_totp(secret: str | None, candidate: str | None, skew_windows: int = 1) -> bool:
    """Check a 6-digit code against the current step and +/- ``skew_windows`` steps."""
    if not secret or not is_totp_format(candidate):
        return False
    try:
        return totp_from_secret(secret).verify(candidate, valid_window=skew_windows)
    except (ValueError, TypeError):
        # malformed stored secret
        return False


def hash_backup_code(code: str, pepper: str) -> str:
    digest = hmac.new(pepper.encode("utf-8"), normalize_backup_code(code).encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def verify_backup_code(hashed_candidates: Iterable[str], candidate: str | None, pepper: str) -> Optional[str]:
    """
    Match ``candidate`` against the unused set.

    Returns the stored hash that matched so the caller can remove exactly that
    code, or ``None``.
    """
    if not is_backup_code_format(candidate):
        return None
    wanted = hash_backup_code(candidate, pepper)
    match = None
    for stored in hashed_candidates:
        if hmac.compare_digest(stored, wanted):
            match = stored
    return match


def provisioning_uri(email: str, secret: str, issuer: str) -> str:
    return totp_from_secret(secret).provisioning_uri(name=email, issuer_name=issuer)


def build_qr_data_url(otpauth_url: str) -> str:
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(otpauth_url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
