"""
Per-request bearer-token check.

A token is accepted only when its signature and own expiry check out AND a
live ``user_sessions`` row still backs it. The row is authoritative for
revocation; the signature for tampering and absolute staleness.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core import security
from app.core.codes import hash_token
from app.core.config import Settings
from app.core.errors import AuthenticationFailure, AuthorizationFailure, NotFound
from app.models import UserRole
from app.services import credential_store as store

logger = logging.getLogger(__name__)

TOKEN_REQUIRED = "Access token required"
INVALID_TOKEN = "Invalid or expired token"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    role: UserRole
    token_hash: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _invalid(reason: str) -> AuthenticationFailure:
    logger.warning(f"Bearer token rejected: {reason}")
    return AuthenticationFailure(INVALID_TOKEN, status_code=403)


def authenticate_bearer(db: Session, settings: Settings, token: str | None) -> Identity:
    if not token:
        raise AuthenticationFailure(TOKEN_REQUIRED, status_code=401)

    check = security.check_token(token, settings)
    if not check.ok:
        raise _invalid(check.status.value)
    if check.claims.get("type") != security.ACCESS_TOKEN_TYPE:
        raise _invalid("wrong token type")

    token_hash = hash_token(token)
    session = store.find_session_by_token_hash(db, token_hash)
    if session is None:
        raise _invalid("no live session")
    if session.user_id != check.claims.get("sub"):
        raise _invalid("session/subject mismatch")
    # rows minted here are always complete; anything else came from outside this service
    if not session.is_2fa_complete:
        raise AuthenticationFailure("2FA verification required", status_code=403)

    try:
        user = store.find_user_by_id(db, session.user_id)
    except NotFound:
        raise _invalid("user no longer exists")
    return Identity(user_id=user.id, email=user.email, role=user.role, token_hash=token_hash)


def ensure_admin(identity: Identity) -> Identity:
    if not identity.is_admin:
        logger.warning(f"Admin route refused for user {identity.user_id}")
        raise AuthorizationFailure("Admin access required")
    return identity
