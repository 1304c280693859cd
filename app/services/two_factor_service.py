"""2FA setup, verification, disable, backup-code regeneration and status."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core import security
from app.core.codes import generate_backup_codes, generate_totp_secret
from app.core.config import Settings
from app.core.errors import Conflict, ValidationFailed
from app.core.mfa import (
    build_qr_data_url,
    hash_backup_code,
    is_backup_code_format,
    provisioning_uri,
    verify_backup_code,
    verify_totp,
)
from app.models import AttemptPurpose, TwoFactorConfig
from app.services import attempt_log_service, credential_store as store
from app.services.credential_store import atomic

logger = logging.getLogger(__name__)

INVALID_VERIFICATION_CODE = "Invalid verification code"
INVALID_CODE_OR_PASSWORD = "Invalid verification code or password"
NOT_ENABLED = "2FA is not enabled"


@dataclass(frozen=True)
class SecondFactorResult:
    ok: bool
    used_backup_code: bool = False
    matched_hash: Optional[str] = None


def check_second_factor(
    db: Session, settings: Settings, config: TwoFactorConfig, code: str | None, allow_backup: bool = True
) -> SecondFactorResult:
    """
    Route ``code`` to the backup-code or TOTP check by its shape.

    Nothing is consumed here; a backup-code match only reports which stored
    hash matched.
    """
    code = (code or "").strip()
    if allow_backup and is_backup_code_format(code):
        matched = verify_backup_code(store.list_backup_code_hashes(db, config.user_id), code, settings.code_pepper)
        return SecondFactorResult(ok=matched is not None, used_backup_code=matched is not None, matched_hash=matched)
    return SecondFactorResult(ok=verify_totp(config.secret, code, settings.totp_valid_window))


def _hash_codes(codes: List[str], settings: Settings) -> List[str]:
    return [hash_backup_code(code, settings.code_pepper) for code in codes]


def _record_failure(db: Session, user_id: str, purpose: AttemptPurpose, code: str | None, ip_address: str | None):
    with atomic(db):
        attempt_log_service.log_attempt(db, user_id, purpose, False, code, ip_address)


def setup_start(db: Session, settings: Settings, user_id: str, email: str) -> Dict:
    existing = store.get_2fa_config(db, user_id)
    if existing is not None and existing.is_enabled:
        raise Conflict("2FA is already enabled for this account")

    secret = generate_totp_secret()
    with atomic(db):
        store.upsert_2fa_config(db, user_id, secret)

    otpauth_url = provisioning_uri(email, secret, settings.totp_issuer)
    logger.info(f"2FA setup initiated for user {user_id}")
    return {
        "message": "Scan the QR code with your authenticator app",
        "qrCode": build_qr_data_url(otpauth_url),
        "otpauthUrl": otpauth_url,
        "manualEntryKey": secret,
        # issued only once the first code is verified
        "backupCodes": None,
    }


def verify_setup(db: Session, settings: Settings, user_id: str, code: str, ip_address: str | None = None) -> Dict:
    config = store.get_2fa_config(db, user_id)
    if config is None:
        raise ValidationFailed("2FA setup not initiated")
    if config.is_enabled:
        raise Conflict("2FA is already enabled")

    attempt_log_service.ensure_not_throttled(db, settings, user_id)
    if not verify_totp(config.secret, code, settings.totp_valid_window):
        _record_failure(db, user_id, AttemptPurpose.VERIFY_SETUP, code, ip_address)
        raise ValidationFailed(INVALID_VERIFICATION_CODE)

    backup_codes = generate_backup_codes(settings.backup_code_count)
    with atomic(db):
        if not store.mark_enabled(db, user_id, _hash_codes(backup_codes, settings)):
            raise Conflict("2FA is already enabled")
        attempt_log_service.log_attempt(db, user_id, AttemptPurpose.VERIFY_SETUP, True, code, ip_address)

    logger.info(f"2FA enabled for user {user_id}")
    return {
        "message": "2FA has been successfully enabled",
        "backupCodes": backup_codes,
        "warning": "Store these backup codes safely. They can only be used once and will not be shown again.",
    }


def disable(
    db: Session, settings: Settings, user_id: str, code: str, password: str, ip_address: str | None = None
) -> Dict:
    user = store.find_user_by_id(db, user_id)
    password_ok = security.verify_password(password, user.password_hash)

    config = store.get_2fa_config(db, user_id)
    if password_ok and (config is None or not config.is_enabled):
        raise ValidationFailed(NOT_ENABLED)

    attempt_log_service.ensure_not_throttled(db, settings, user_id)
    code_ok = config is not None and config.is_enabled and check_second_factor(db, settings, config, code).ok
    if not (password_ok and code_ok):
        _record_failure(db, user_id, AttemptPurpose.DISABLE, code, ip_address)
        raise ValidationFailed(INVALID_CODE_OR_PASSWORD)

    with atomic(db):
        store.disable_2fa(db, user_id)
        attempt_log_service.log_attempt(db, user_id, AttemptPurpose.DISABLE, True, code, ip_address)

    logger.info(f"2FA disabled for user {user_id}")
    return {"message": "2FA has been successfully disabled"}


def regenerate_backup_codes(
    db: Session, settings: Settings, user_id: str, code: str, ip_address: str | None = None
) -> Dict:
    config = store.get_2fa_config(db, user_id)
    if config is None or not config.is_enabled:
        raise ValidationFailed(NOT_ENABLED)

    attempt_log_service.ensure_not_throttled(db, settings, user_id)
    if not check_second_factor(db, settings, config, code, allow_backup=False).ok:
        _record_failure(db, user_id, AttemptPurpose.REGENERATE_CODES, code, ip_address)
        raise ValidationFailed(INVALID_VERIFICATION_CODE)

    backup_codes = generate_backup_codes(settings.backup_code_count)
    with atomic(db):
        store.replace_backup_codes(db, user_id, _hash_codes(backup_codes, settings))
        store.touch_2fa_last_used(db, user_id)
        attempt_log_service.log_attempt(db, user_id, AttemptPurpose.REGENERATE_CODES, True, code, ip_address)

    logger.info(f"Backup codes regenerated for user {user_id}")
    return {
        "message": "New backup codes generated",
        "backupCodes": backup_codes,
        "warning": "These new codes replace all previous backup codes. Store them safely.",
    }


def status(db: Session, user_id: str) -> Dict:
    config = store.get_2fa_config(db, user_id)
    if config is None:
        return {"enabled": False, "setup_initiated": False, "backup_codes_remaining": 0, "last_used": None}
    return {
        "enabled": bool(config.is_enabled),
        "setup_initiated": config.setup_initiated_at_utc is not None,
        "backup_codes_remaining": store.count_backup_codes(db, user_id) if config.is_enabled else 0,
        "last_used": config.last_used_at_utc,
    }
