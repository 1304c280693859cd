import hashlib
import secrets
from typing import List

import pyotp

TOTP_SECRET_LENGTH = 32  # base32 chars -> 160 bits
BACKUP_CODE_BYTES = 4  # 8 hex chars


def generate_totp_secret() -> str:
    return pyotp.random_base32(length=TOTP_SECRET_LENGTH)


def generate_backup_codes(count: int = 10) -> List[str]:
    """Return ``count`` distinct codes, each 8 uppercase hex characters."""
    codes: List[str] = []
    seen = set()
    while len(codes) < count:
        code = secrets.token_hex(BACKUP_CODE_BYTES).upper()
        if code in seen:
            continue
        seen.add(code)
        codes.append(code)
    return codes


def generate_opaque_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
