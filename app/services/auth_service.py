"""
Two-step login: password, then (when enabled) TOTP or backup code.

    AwaitingPassword --login--> Authenticated                (no 2FA)
    AwaitingPassword --login--> AwaitingSecondFactor         (2FA enabled)
    AwaitingSecondFactor --complete_two_factor_login--> Authenticated
    any --failure--> Rejected

Rejections are raised as ``HTTPException`` subclasses from ``app.core.errors``.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NoReturn, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import security
from app.core.codes import generate_opaque_token, hash_token
from app.core.config import Settings
from app.core.errors import AuthenticationFailure, Conflict, NotFound, ServiceError, TooManyAttempts
from app.core.time import utcnow
from app.models import AttemptPurpose, User
from app.services import attempt_log_service, credential_store as store
from app.services.credential_store import atomic
from app.services.two_factor_service import check_second_factor

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_PENDING_SESSION = "Invalid or expired session token"
INVALID_2FA_CODE = "Invalid 2FA code"


class LoginState(str, enum.Enum):
    AWAITING_PASSWORD = "awaiting_password"
    AWAITING_SECOND_FACTOR = "awaiting_second_factor"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


_TRANSITIONS = {
    LoginState.AWAITING_PASSWORD: {LoginState.AWAITING_SECOND_FACTOR, LoginState.AUTHENTICATED, LoginState.REJECTED},
    LoginState.AWAITING_SECOND_FACTOR: {LoginState.AUTHENTICATED, LoginState.REJECTED},
    LoginState.AUTHENTICATED: set(),
    LoginState.REJECTED: set(),
}


def advance(current: LoginState, target: LoginState) -> LoginState:
    if target not in _TRANSITIONS[current]:
        raise RuntimeError(f"Illegal login transition {current.value} -> {target.value}")
    return target


@dataclass
class LoginOutcome:
    state: LoginState
    user: User
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    pending_token: Optional[str] = None
    warning: Optional[str] = None
    backup_codes_remaining: Optional[int] = None

    @property
    def requires_2fa(self) -> bool:
        return self.state is LoginState.AWAITING_SECOND_FACTOR


def _reject(current: LoginState, error: ServiceError, reason: str) -> NoReturn:
    advance(current, LoginState.REJECTED)
    logger.warning(f"Login rejected at {current.value}: {reason}")
    raise error


def _issue_session(
    db: Session, settings: Settings, user: User, ip_address: str | None, user_agent: str | None
) -> security.IssuedToken:
    issued = security.create_session_token(user.id, user.email, settings)
    store.create_session(
        db,
        user_id=user.id,
        token_hash=hash_token(issued.token),
        expires_at=issued.expires_at,
        is_2fa_complete=True,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return issued


def _record_password_failure(db: Session, email: str, ip_address: str | None) -> None:
    with atomic(db):
        attempt_log_service.log_failed_login(db, email, ip_address)


def register(
    db: Session,
    settings: Settings,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> LoginOutcome:
    if store.email_exists(db, email):
        raise Conflict("User already exists")
    try:
        with atomic(db):
            user = store.create_user(
                db,
                email=email,
                password_hash=security.hash_password(password),
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
            issued = _issue_session(db, settings, user, ip_address, user_agent)
    except IntegrityError:
        # lost a race with a concurrent registration for the same address
        raise Conflict("User already exists")
    logger.info(f"Registered user {user.id}")
    return LoginOutcome(LoginState.AUTHENTICATED, user, token=issued.token, expires_at=issued.expires_at)


def login(
    db: Session,
    settings: Settings,
    email: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> LoginOutcome:
    state = LoginState.AWAITING_PASSWORD
    email_key = store.normalize_email(email)
    try:
        attempt_log_service.ensure_login_not_throttled(db, settings, email_key, ip_address)
    except TooManyAttempts as exc:
        _reject(state, exc, "password attempts throttled")

    try:
        user = store.find_user_by_email(db, email_key)
    except NotFound:
        security.verify_password(password, None)
        _record_password_failure(db, email_key, ip_address)
        _reject(state, AuthenticationFailure(INVALID_CREDENTIALS), "unknown email")
    if not security.verify_password(password, user.password_hash):
        _record_password_failure(db, email_key, ip_address)
        _reject(state, AuthenticationFailure(INVALID_CREDENTIALS), f"bad password for user {user.id}")

    config = store.get_2fa_config(db, user.id)
    if config is not None and config.is_enabled:
        state = advance(state, LoginState.AWAITING_SECOND_FACTOR)
        pending_token = generate_opaque_token()
        expires_at = utcnow() + timedelta(minutes=settings.pending_2fa_minutes)
        with atomic(db):
            store.record_last_login(db, user)
            store.create_pending_session(db, user.id, hash_token(pending_token), expires_at)
        logger.info(f"Password verified for user {user.id}; awaiting second factor")
        return LoginOutcome(state, user, pending_token=pending_token, expires_at=expires_at)

    state = advance(state, LoginState.AUTHENTICATED)
    with atomic(db):
        store.record_last_login(db, user)
        issued = _issue_session(db, settings, user, ip_address, user_agent)
    logger.info(f"User {user.id} logged in")
    return LoginOutcome(state, user, token=issued.token, expires_at=issued.expires_at)


def complete_two_factor_login(
    db: Session,
    settings: Settings,
    pending_token: str,
    code: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> LoginOutcome:
    state = LoginState.AWAITING_SECOND_FACTOR
    challenge = store.find_pending_session(db, hash_token(pending_token)) if pending_token else None
    if challenge is None:
        _reject(state, AuthenticationFailure(INVALID_PENDING_SESSION), "unknown or expired pending session")
    challenge_id, user_id = challenge.id, challenge.user_id

    attempt_log_service.ensure_not_throttled(db, settings, user_id)

    config = store.get_2fa_config(db, user_id)
    if config is None or not config.is_enabled:
        # 2FA was switched off after the password step
        with atomic(db):
            store.claim_pending_session(db, challenge_id)
        _reject(state, AuthenticationFailure(INVALID_PENDING_SESSION), f"2FA no longer enabled for user {user_id}")

    result = check_second_factor(db, settings, config, code)
    if not result.ok:
        with atomic(db):
            attempt_log_service.log_attempt(db, user_id, AttemptPurpose.LOGIN, False, code, ip_address)
            failures = store.record_pending_failure(db, challenge_id)
            if failures >= settings.two_factor_max_failures:
                store.claim_pending_session(db, challenge_id)
        _reject(state, AuthenticationFailure(INVALID_2FA_CODE, status_code=400), f"bad code for user {user_id}")

    with atomic(db):
        if not store.claim_pending_session(db, challenge_id):
            _reject(state, AuthenticationFailure(INVALID_PENDING_SESSION), "pending session already consumed")
        if result.used_backup_code:
            if not store.consume_backup_code(db, user_id, result.matched_hash):
                _reject(state, AuthenticationFailure(INVALID_2FA_CODE, status_code=400), "backup code already consumed")
        else:
            store.touch_2fa_last_used(db, user_id)
        attempt_log_service.log_attempt(db, user_id, AttemptPurpose.LOGIN, True, code, ip_address)
        user = store.find_user_by_id(db, user_id)
        issued = _issue_session(db, settings, user, ip_address, user_agent)
        remaining = store.count_backup_codes(db, user_id) if result.used_backup_code else None

    state = advance(state, LoginState.AUTHENTICATED)
    outcome = LoginOutcome(state, user, token=issued.token, expires_at=issued.expires_at)
    if result.used_backup_code:
        outcome.backup_codes_remaining = remaining
        outcome.warning = f"Backup code used. {remaining} backup codes remaining."
        logger.info(f"User {user_id} completed 2FA with a backup code ({remaining} left)")
    else:
        logger.info(f"User {user_id} completed 2FA")
    return outcome


def logout(db: Session, token: str | None) -> bool:
    """Revoke the session behind ``token``. Returns whether a session was actually removed."""
    if not token:
        logger.info("Logout called without a bearer token; nothing revoked")
        return False
    with atomic(db):
        revoked = store.delete_session(db, hash_token(token))
    if revoked:
        logger.info("Session revoked on logout")
    else:
        logger.info("Logout found no matching session; nothing revoked")
    return revoked


def sweep_expired(db: Session, settings: Settings) -> dict:
    with atomic(db):
        sessions = store.delete_expired_sessions(db)
        pending = store.delete_expired_pending_sessions(db)
        attempts = attempt_log_service.cleanup_old_attempts(db, settings.attempt_retention_hours)
    if sessions or pending or attempts:
        logger.info(f"Sweep removed {sessions} sessions, {pending} pending sessions, {attempts} attempt rows")
    return {"sessions": sessions, "pending_sessions": pending, "attempts": attempts}
