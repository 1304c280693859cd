"""
Service for failed-password and 2FA attempt logging and throttling
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import TooManyAttempts
from app.core.time import utcnow
from app.models import AttemptPurpose, FailedLogin, TwoFactorAttempt

logger = logging.getLogger(__name__)


def mask_code(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return code[:3] + "*"


def log_attempt(
    db: Session,
    user_id: str,
    purpose: AttemptPurpose,
    success: bool,
    code: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> TwoFactorAttempt:
    """
    Record a 2FA verification attempt.

    Only a masked prefix of the submitted code is stored. The caller owns the
    transaction; the entry is flushed, not committed.
    """
    entry = TwoFactorAttempt(
        user_id=user_id,
        purpose=purpose,
        success=success,
        token_used=mask_code(code),
        ip_address=ip_address,
        attempted_at_utc=utcnow(),
    )
    db.add(entry)
    db.flush()
    if not success:
        logger.warning(f"Failed 2FA attempt ({purpose.value}) for user {user_id}")
    return entry


def get_failed_attempts_count(db: Session, user_id: str, minutes: int = 15) -> int:
    """
    Count failed 2FA attempts for a user in the last N minutes.

    Args:
        db: Database session
        user_id: User whose attempts are counted
        minutes: Time window in minutes

    Returns:
        Number of failed attempts
    """
    cutoff_time = utcnow() - timedelta(minutes=minutes)
    return db.execute(
        select(func.count(TwoFactorAttempt.id)).where(
            TwoFactorAttempt.user_id == user_id,
            TwoFactorAttempt.success.is_(False),
            TwoFactorAttempt.attempted_at_utc >= cutoff_time,
        )
    ).scalar_one()


def ensure_not_throttled(db: Session, settings: Settings, user_id: str) -> None:
    failures = get_failed_attempts_count(db, user_id, settings.two_factor_failure_window_minutes)
    if failures >= settings.two_factor_max_failures:
        logger.warning(f"2FA attempts throttled for user {user_id} ({failures} recent failures)")
        raise TooManyAttempts(retry_after_seconds=settings.two_factor_failure_window_minutes * 60)


def log_failed_login(db: Session, email: str, ip_address: Optional[str] = None) -> FailedLogin:
    """Record a rejected password attempt. Flushed, not committed."""
    entry = FailedLogin(email=email, ip_address=ip_address, attempted_at_utc=utcnow())
    db.add(entry)
    db.flush()
    return entry


def get_failed_logins_count(
    db: Session, email: Optional[str] = None, ip_address: Optional[str] = None, minutes: int = 15
) -> int:
    """Count rejected password attempts in the last N minutes for an address or a client IP."""
    cutoff_time = utcnow() - timedelta(minutes=minutes)
    query = select(func.count(FailedLogin.id)).where(FailedLogin.attempted_at_utc >= cutoff_time)
    if email is not None:
        query = query.where(FailedLogin.email == email)
    if ip_address is not None:
        query = query.where(FailedLogin.ip_address == ip_address)
    return db.execute(query).scalar_one()


def ensure_login_not_throttled(db: Session, settings: Settings, email: str, ip_address: Optional[str]) -> None:
    """
    Refuse the password step once either the address or the client IP has
    ``login_max_failures`` rejections inside the window.

    Checked before the user lookup, so known and unknown addresses throttle alike.
    """
    window = settings.login_failure_window_minutes
    failures = get_failed_logins_count(db, email=email, minutes=window)
    if ip_address:
        failures = max(failures, get_failed_logins_count(db, ip_address=ip_address, minutes=window))
    if failures >= settings.login_max_failures:
        logger.warning(f"Password attempts throttled ({failures} recent failures from {ip_address or 'unknown ip'})")
        raise TooManyAttempts(
            retry_after_seconds=window * 60,
            detail="Too many authentication attempts, please try again later.",
        )


def cleanup_old_attempts(db: Session, hours_to_keep: int = 24) -> int:
    """
    Delete 2FA attempt and failed-login rows older than ``hours_to_keep``.

    Returns:
        Number of deleted records
    """
    cutoff = utcnow() - timedelta(hours=hours_to_keep)
    deleted = 0
    for model in (TwoFactorAttempt, FailedLogin):
        result = db.execute(
            delete(model)
            .where(model.attempted_at_utc < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted += result.rowcount or 0
    return deleted
