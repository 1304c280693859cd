import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from .config import Settings


# Use pbkdf2_sha256 as primary to avoid bcrypt backend issues; keep bcrypt variants for legacy verification.
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"],
    deprecated="auto",
    bcrypt__truncate_error=False,
)
ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        # burn comparable time so a missing account looks like a wrong password
        pwd_context.verify(password, _dummy_hash())
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return pwd_context.hash(uuid.uuid4().hex)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    claims: Dict[str, Any]

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.claims["exp"], tz=timezone.utc)


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenCheck:
    status: TokenStatus
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID


def create_session_token(user_id: str, email: str, settings: Settings) -> IssuedToken:
    now = int(time.time())
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": ACCESS_TOKEN_TYPE,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + settings.access_token_ttl_seconds,
        # distinct tokens even when two sessions are minted in the same second
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)
    return IssuedToken(token=token, claims=claims)


def check_token(token: str | None, settings: Settings) -> TokenCheck:
    """Decode a bearer token without raising; signature, issuer and expiry are all enforced."""
    if not token:
        return TokenCheck(TokenStatus.INVALID)
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "iss", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        return TokenCheck(TokenStatus.EXPIRED)
    except jwt.InvalidTokenError:
        return TokenCheck(TokenStatus.INVALID)
    return TokenCheck(TokenStatus.VALID, claims)
