import pyotp
import pytest
from fastapi import HTTPException

from app.models import TwoFactorAttempt
from app.services import auth_service, two_factor_service
from conftest import PASSWORD, enable_2fa, wrong_totp


def test_setup_does_not_enable_or_issue_codes(db, settings, user):
    setup = two_factor_service.setup_start(db, settings, user.id, user.email)
    assert setup["backupCodes"] is None
    assert setup["qrCode"].startswith("data:image/png;base64,")
    assert setup["otpauthUrl"].startswith("otpauth://totp/")
    assert "Esoteric%20Enterprises" in setup["otpauthUrl"]
    status = two_factor_service.status(db, user.id)
    assert status["enabled"] is False
    assert status["setup_initiated"] is True


def test_setup_restart_replaces_secret(db, settings, user):
    first = two_factor_service.setup_start(db, settings, user.id, user.email)["manualEntryKey"]
    second = two_factor_service.setup_start(db, settings, user.id, user.email)["manualEntryKey"]
    assert first != second
    with pytest.raises(HTTPException):
        two_factor_service.verify_setup(db, settings, user.id, pyotp.TOTP(first).now())


def test_setup_refused_when_already_enabled(db, settings, user):
    enable_2fa(db, settings, user)
    with pytest.raises(HTTPException) as exc:
        two_factor_service.setup_start(db, settings, user.id, user.email)
    assert exc.value.status_code == 400
    assert exc.value.detail == "2FA is already enabled for this account"


def test_verify_without_setup(db, settings, user):
    with pytest.raises(HTTPException) as exc:
        two_factor_service.verify_setup(db, settings, user.id, "123456")
    assert exc.value.status_code == 400
    assert exc.value.detail == "2FA setup not initiated"


def test_verify_with_wrong_code_leaves_2fa_disabled(db, settings, user):
    secret = two_factor_service.setup_start(db, settings, user.id, user.email)["manualEntryKey"]
    with pytest.raises(HTTPException) as exc:
        two_factor_service.verify_setup(db, settings, user.id, wrong_totp(secret))
    assert exc.value.detail == "Invalid verification code"
    assert two_factor_service.status(db, user.id)["enabled"] is False
    failed = db.query(TwoFactorAttempt).filter_by(user_id=user.id, success=False).one()
    assert failed.token_used.endswith("*") and len(failed.token_used) == 4


def test_verify_enables_and_issues_ten_distinct_codes(db, settings, user):
    _, codes = enable_2fa(db, settings, user)
    assert len(codes) == 10
    assert len(set(codes)) == 10
    status = two_factor_service.status(db, user.id)
    assert status["enabled"] is True
    assert status["backup_codes_remaining"] == 10


def test_disable_requires_password_and_code(db, settings, user):
    secret, codes = enable_2fa(db, settings, user)
    with pytest.raises(HTTPException) as exc:
        two_factor_service.disable(db, settings, user.id, pyotp.TOTP(secret).now(), "wrong-password")
    assert exc.value.detail == "Invalid verification code or password"
    with pytest.raises(HTTPException) as exc:
        two_factor_service.disable(db, settings, user.id, wrong_totp(secret), PASSWORD)
    assert exc.value.detail == "Invalid verification code or password"
    assert two_factor_service.status(db, user.id)["enabled"] is True

    result = two_factor_service.disable(db, settings, user.id, codes[0], PASSWORD)
    assert result["message"] == "2FA has been successfully disabled"
    assert two_factor_service.status(db, user.id) == {
        "enabled": False,
        "setup_initiated": False,
        "backup_codes_remaining": 0,
        "last_used": None,
    }


def test_disable_when_not_enabled(db, settings, user):
    with pytest.raises(HTTPException) as exc:
        two_factor_service.disable(db, settings, user.id, "123456", PASSWORD)
    assert exc.value.detail == "2FA is not enabled"
    # without the right password the state is not revealed
    with pytest.raises(HTTPException) as exc:
        two_factor_service.disable(db, settings, user.id, "123456", "wrong-password")
    assert exc.value.detail == "Invalid verification code or password"


def test_login_after_disable_needs_no_second_factor(db, settings, user):
    secret, _ = enable_2fa(db, settings, user)
    two_factor_service.disable(db, settings, user.id, pyotp.TOTP(secret).now(), PASSWORD)
    assert auth_service.login(db, settings, user.email, PASSWORD).token


def test_regenerate_replaces_all_codes(db, settings, user):
    secret, old_codes = enable_2fa(db, settings, user)
    result = two_factor_service.regenerate_backup_codes(db, settings, user.id, pyotp.TOTP(secret).now())
    new_codes = result["backupCodes"]
    assert len(new_codes) == 10
    assert not set(new_codes) & set(old_codes)

    pending = auth_service.login(db, settings, user.email, PASSWORD).pending_token
    with pytest.raises(HTTPException) as exc:
        auth_service.complete_two_factor_login(db, settings, pending, old_codes[0])
    assert exc.value.status_code == 400
    assert auth_service.complete_two_factor_login(db, settings, pending, new_codes[0]).backup_codes_remaining == 9


def test_regenerate_rejects_backup_code_and_disabled_account(db, settings, user):
    with pytest.raises(HTTPException) as exc:
        two_factor_service.regenerate_backup_codes(db, settings, user.id, "123456")
    assert exc.value.detail == "2FA is not enabled"

    _, codes = enable_2fa(db, settings, user)
    with pytest.raises(HTTPException) as exc:
        two_factor_service.regenerate_backup_codes(db, settings, user.id, codes[0])
    assert exc.value.detail == "Invalid verification code"


def test_status_tracks_backup_code_use(db, settings, user):
    _, codes = enable_2fa(db, settings, user)
    pending = auth_service.login(db, settings, user.email, PASSWORD).pending_token
    auth_service.complete_two_factor_login(db, settings, pending, codes[3])
    status = two_factor_service.status(db, user.id)
    assert status["backup_codes_remaining"] == 9
    assert status["last_used"] is not None
