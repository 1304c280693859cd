import threading

import pyotp
import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base
from app.models import UserSession
from app.services import auth_service, two_factor_service
from conftest import PASSWORD, enable_2fa, make_user

THREADS = 4


@pytest.fixture()
def session_factory(tmp_path):
    # file-backed so each thread gets its own connection and real locking
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    try:
        yield factory
    finally:
        engine.dispose()


def _race(session_factory, settings, submissions):
    """Run each (pending_token, code) pair on its own thread and session, released together."""
    barrier = threading.Barrier(len(submissions))
    results = [None] * len(submissions)

    def worker(index, pending_token, code):
        db = session_factory()
        try:
            barrier.wait()
            auth_service.complete_two_factor_login(db, settings, pending_token, code)
            results[index] = "ok"
        except HTTPException as exc:
            results[index] = exc.status_code
        except Exception as exc:
            results[index] = repr(exc)
        finally:
            db.close()

    threads = [
        threading.Thread(target=worker, args=(index, pending_token, code))
        for index, (pending_token, code) in enumerate(submissions)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def test_racing_submissions_of_one_backup_code_succeed_once(session_factory, settings):
    db = session_factory()
    user = make_user(db)
    _, codes = enable_2fa(db, settings, user)
    pending = [auth_service.login(db, settings, user.email, PASSWORD).pending_token for _ in range(THREADS)]
    db.close()

    results = _race(session_factory, settings, [(token, codes[0]) for token in pending])

    assert results.count("ok") == 1
    assert all(result in (400, 401) for result in results if result != "ok"), results

    db = session_factory()
    try:
        assert db.query(UserSession).count() == 1
        assert two_factor_service.status(db, user.id)["backup_codes_remaining"] == 9
    finally:
        db.close()


def test_racing_completions_of_one_pending_session_mint_one_session(session_factory, settings):
    db = session_factory()
    user = make_user(db)
    secret, _ = enable_2fa(db, settings, user)
    pending = auth_service.login(db, settings, user.email, PASSWORD).pending_token
    db.close()

    code = pyotp.TOTP(secret).now()
    results = _race(session_factory, settings, [(pending, code)] * THREADS)

    assert results.count("ok") == 1
    assert all(result == 401 for result in results if result != "ok"), results

    db = session_factory()
    try:
        assert db.query(UserSession).count() == 1
    finally:
        db.close()
