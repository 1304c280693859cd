from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import NotFound, TransientStoreError
from app.core.time import utcnow
from app.services import credential_store as store
from app.services.credential_store import atomic


def test_find_user_by_email_is_case_insensitive(db, user):
    assert store.find_user_by_email(db, "  BORROWER@Example.com ").id == user.id


def test_missing_user_raises_not_found(db):
    with pytest.raises(NotFound):
        store.find_user_by_email(db, "ghost@example.com")
    with pytest.raises(NotFound):
        store.find_user_by_id(db, "no-such-id")


def test_upsert_then_mark_enabled_installs_codes_together(db, user):
    with atomic(db):
        config = store.upsert_2fa_config(db, user.id, "JBSWY3DPEHPK3PXP")
    assert not config.is_enabled
    assert config.setup_initiated_at_utc is not None
    assert store.count_backup_codes(db, user.id) == 0

    with atomic(db):
        assert store.mark_enabled(db, user.id, ["h1", "h2", "h3"])
    assert store.get_2fa_config(db, user.id).is_enabled
    assert store.list_backup_code_hashes(db, user.id) == ["h1", "h2", "h3"]


def test_mark_enabled_only_once(db, user):
    with atomic(db):
        store.upsert_2fa_config(db, user.id, "JBSWY3DPEHPK3PXP")
        assert store.mark_enabled(db, user.id, ["h1"])
    with atomic(db):
        assert not store.mark_enabled(db, user.id, ["other"])
    assert store.list_backup_code_hashes(db, user.id) == ["h1"]


def test_failed_transaction_leaves_no_partial_state(db, user):
    with atomic(db):
        store.upsert_2fa_config(db, user.id, "JBSWY3DPEHPK3PXP")
    with pytest.raises(RuntimeError):
        with atomic(db):
            store.mark_enabled(db, user.id, ["h1", "h2"])
            raise RuntimeError("boom")
    db.expire_all()
    assert not store.get_2fa_config(db, user.id).is_enabled
    assert store.count_backup_codes(db, user.id) == 0


def test_backup_code_consumed_exactly_once(db, user):
    with atomic(db):
        store.upsert_2fa_config(db, user.id, "JBSWY3DPEHPK3PXP")
        store.mark_enabled(db, user.id, ["h1", "h2"])
    with atomic(db):
        assert store.consume_backup_code(db, user.id, "h1")
    with atomic(db):
        assert not store.consume_backup_code(db, user.id, "h1")
    db.expire_all()
    assert store.list_backup_code_hashes(db, user.id) == ["h2"]
    assert store.get_2fa_config(db, user.id).backup_codes_used == 1


def test_disable_removes_config_and_codes(db, user):
    with atomic(db):
        store.upsert_2fa_config(db, user.id, "JBSWY3DPEHPK3PXP")
        store.mark_enabled(db, user.id, ["h1"])
    with atomic(db):
        assert store.disable_2fa(db, user.id)
    assert store.get_2fa_config(db, user.id) is None
    assert store.count_backup_codes(db, user.id) == 0


def test_expired_sessions_are_invisible_and_swept(db, user):
    with atomic(db):
        store.create_session(db, user.id, "live", utcnow() + timedelta(hours=1))
        store.create_session(db, user.id, "stale", utcnow() - timedelta(seconds=1))
    assert store.find_session_by_token_hash(db, "live") is not None
    assert store.find_session_by_token_hash(db, "stale") is None
    with atomic(db):
        assert store.delete_expired_sessions(db) == 1
    with atomic(db):
        assert store.delete_session(db, "live")
    with atomic(db):
        assert not store.delete_session(db, "live")


def test_pending_session_claimed_once(db, user):
    with atomic(db):
        challenge = store.create_pending_session(db, user.id, "pending-hash", utcnow() + timedelta(minutes=10))
    challenge_id = challenge.id
    with atomic(db):
        assert store.claim_pending_session(db, challenge_id)
    with atomic(db):
        assert not store.claim_pending_session(db, challenge_id)
    assert store.find_pending_session(db, "pending-hash") is None


def test_pending_sessions_for_same_user_are_independent(db, user):
    expires = utcnow() + timedelta(minutes=10)
    with atomic(db):
        store.create_pending_session(db, user.id, "first", expires)
        store.create_pending_session(db, user.id, "second", expires)
    assert store.find_pending_session(db, "first") is not None
    assert store.find_pending_session(db, "second") is not None


def test_pending_failures_accumulate(db, user):
    with atomic(db):
        challenge = store.create_pending_session(db, user.id, "p", utcnow() + timedelta(minutes=10))
    with atomic(db):
        assert store.record_pending_failure(db, challenge.id) == 1
        assert store.record_pending_failure(db, challenge.id) == 2


def test_operational_errors_become_transient():
    @store._store_call
    def flaky():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with pytest.raises(TransientStoreError) as exc:
        flaky()
    assert exc.value.status_code == 503
    assert "locked" not in str(exc.value.detail)
