"""
Persistence for users, 2FA configuration, sessions and pending 2FA sessions.

Functions here flush but never commit. Callers group writes that must land
together inside ``atomic(db)``. Operational database failures surface as
``TransientStoreError`` (503) instead of leaking driver text.
"""
import functools
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, TransientStoreError
from app.core.time import utcnow
from app.models import BackupCode, LoginChallenge, TwoFactorConfig, User, UserRole, UserSession

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError)


def _store_call(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except _TRANSIENT_ERRORS as exc:
            logger.error(f"Store call {fn.__name__} failed: {exc.__class__.__name__}")
            raise TransientStoreError() from exc

    return wrapper


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done in the block, or nothing."""
    try:
        yield db
        db.commit()
    except _TRANSIENT_ERRORS as exc:
        db.rollback()
        logger.error(f"Transaction aborted: {exc.__class__.__name__}")
        raise TransientStoreError() from exc
    except Exception:
        db.rollback()
        raise


def normalize_email(email: str) -> str:
    return email.strip().lower()


# --- users ---


@_store_call
def find_user_by_email(db: Session, email: str) -> User:
    user = db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


@_store_call
def find_user_by_id(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@_store_call
def email_exists(db: Session, email: str) -> bool:
    return db.execute(select(User.id).where(User.email == normalize_email(email))).first() is not None


@_store_call
def create_user(
    db: Session,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    role: UserRole = UserRole.USER,
) -> User:
    user = User(
        email=normalize_email(email),
        password_hash=password_hash,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        role=role,
    )
    db.add(user)
    db.flush()
    return user


@_store_call
def record_last_login(db: Session, user: User) -> None:
    user.last_login_utc = utcnow()
    db.add(user)
    db.flush()


@_store_call
def list_users(db: Session) -> List[User]:
    return list(db.execute(select(User).order_by(User.created_at_utc)).scalars())


# --- 2FA configuration ---


@_store_call
def get_2fa_config(db: Session, user_id: str) -> Optional[TwoFactorConfig]:
    return db.execute(select(TwoFactorConfig).where(TwoFactorConfig.user_id == user_id)).scalar_one_or_none()


@_store_call
def upsert_2fa_config(db: Session, user_id: str, secret: str) -> TwoFactorConfig:
    """Store a fresh, not-yet-verified secret. Any previous codes are dropped."""
    now = utcnow()
    config = get_2fa_config(db, user_id)
    if config is None:
        config = TwoFactorConfig(user_id=user_id, secret=secret, is_enabled=False)
    config.secret = secret
    config.is_enabled = False
    config.setup_initiated_at_utc = now
    config.backup_codes_used = 0
    db.add(config)
    db.execute(delete(BackupCode).where(BackupCode.user_id == user_id))
    db.flush()
    return config


@_store_call
def replace_backup_codes(db: Session, user_id: str, code_hashes: List[str]) -> None:
    db.execute(delete(BackupCode).where(BackupCode.user_id == user_id))
    db.add_all(
        BackupCode(user_id=user_id, code_hash=code_hash, position=position)
        for position, code_hash in enumerate(code_hashes)
    )
    db.flush()


@_store_call
def mark_enabled(db: Session, user_id: str, code_hashes: List[str]) -> bool:
    """
    Flip a pending config to enabled and install its backup codes.

    Conditional on the config still being disabled, so two racing verifications
    cannot both hand out a batch of codes. Must run inside ``atomic``.
    """
    result = db.execute(
        update(TwoFactorConfig)
        .where(TwoFactorConfig.user_id == user_id, TwoFactorConfig.is_enabled.is_(False))
        .values(is_enabled=True, last_used_at_utc=utcnow(), backup_codes_used=0)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        return False
    replace_backup_codes(db, user_id, code_hashes)
    return True


@_store_call
def list_backup_code_hashes(db: Session, user_id: str) -> List[str]:
    rows = db.execute(
        select(BackupCode.code_hash).where(BackupCode.user_id == user_id).order_by(BackupCode.position)
    )
    return list(rows.scalars())


@_store_call
def count_backup_codes(db: Session, user_id: str) -> int:
    return db.execute(select(func.count(BackupCode.id)).where(BackupCode.user_id == user_id)).scalar_one()


@_store_call
def consume_backup_code(db: Session, user_id: str, code_hash: str) -> bool:
    """Compare-and-delete one code. Only the caller whose delete hits a row wins."""
    result = db.execute(
        delete(BackupCode)
        .where(BackupCode.user_id == user_id, BackupCode.code_hash == code_hash)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    db.execute(
        update(TwoFactorConfig)
        .where(TwoFactorConfig.user_id == user_id)
        .values(backup_codes_used=TwoFactorConfig.backup_codes_used + 1, last_used_at_utc=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return True


@_store_call
def touch_2fa_last_used(db: Session, user_id: str) -> None:
    db.execute(
        update(TwoFactorConfig)
        .where(TwoFactorConfig.user_id == user_id)
        .values(last_used_at_utc=utcnow())
        .execution_options(synchronize_session="fetch")
    )


@_store_call
def disable_2fa(db: Session, user_id: str) -> bool:
    db.execute(delete(BackupCode).where(BackupCode.user_id == user_id).execution_options(synchronize_session=False))
    result = db.execute(
        delete(TwoFactorConfig)
        .where(TwoFactorConfig.user_id == user_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


# --- sessions ---


@_store_call
def create_session(
    db: Session,
    user_id: str,
    token_hash: str,
    expires_at: datetime,
    is_2fa_complete: bool = True,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> UserSession:
    session = UserSession(
        user_id=user_id,
        token_hash=token_hash,
        expires_at_utc=expires_at,
        is_2fa_complete=is_2fa_complete,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(session)
    db.flush()
    return session


@_store_call
def find_session_by_token_hash(db: Session, token_hash: str) -> Optional[UserSession]:
    return db.execute(
        select(UserSession).where(UserSession.token_hash == token_hash, UserSession.expires_at_utc > utcnow())
    ).scalar_one_or_none()


@_store_call
def delete_session(db: Session, token_hash: str) -> bool:
    result = db.execute(
        delete(UserSession)
        .where(UserSession.token_hash == token_hash)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


@_store_call
def delete_expired_sessions(db: Session) -> int:
    result = db.execute(
        delete(UserSession)
        .where(UserSession.expires_at_utc <= utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


# --- pending 2FA sessions ---


@_store_call
def create_pending_session(db: Session, user_id: str, token_hash: str, expires_at: datetime) -> LoginChallenge:
    """Store a new pending session. Expired ones are cleared; other live ones for the user stay valid."""
    db.execute(
        delete(LoginChallenge)
        .where(LoginChallenge.expires_at_utc < utcnow())
        .execution_options(synchronize_session=False)
    )
    challenge = LoginChallenge(user_id=user_id, token_hash=token_hash, expires_at_utc=expires_at)
    db.add(challenge)
    db.flush()
    return challenge


@_store_call
def find_pending_session(db: Session, token_hash: str) -> Optional[LoginChallenge]:
    return db.execute(
        select(LoginChallenge).where(LoginChallenge.token_hash == token_hash, LoginChallenge.expires_at_utc > utcnow())
    ).scalar_one_or_none()


@_store_call
def claim_pending_session(db: Session, challenge_id: str) -> bool:
    """Compare-and-delete: exactly one completion may consume a pending session."""
    result = db.execute(
        delete(LoginChallenge)
        .where(LoginChallenge.id == challenge_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


@_store_call
def record_pending_failure(db: Session, challenge_id: str) -> int:
    db.execute(
        update(LoginChallenge)
        .where(LoginChallenge.id == challenge_id)
        .values(failed_attempts=LoginChallenge.failed_attempts + 1)
        .execution_options(synchronize_session="fetch")
    )
    failures = db.execute(select(LoginChallenge.failed_attempts).where(LoginChallenge.id == challenge_id)).scalar()
    return failures or 0


@_store_call
def delete_expired_pending_sessions(db: Session) -> int:
    result = db.execute(
        delete(LoginChallenge)
        .where(LoginChallenge.expires_at_utc <= utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
