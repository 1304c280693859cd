import os

# app.db.session builds its engine from settings at import time
os.environ.setdefault("LOANSERVICE_JWT_SECRET", "test-jwt-secret-for-unit-tests-only")
os.environ.setdefault("LOANSERVICE_DATABASE_URL", "sqlite://")
os.environ.setdefault("LOANSERVICE_SESSION_SWEEP_INTERVAL_SECONDS", "0")

import time

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core import security
from app.core.config import Settings, get_settings
from app.db.base import Base
from app.main import app
from app.models import User, UserRole
from app.services import two_factor_service

PASSWORD = "Secret123!"


@pytest.fixture()
def settings():
    return Settings(
        jwt_secret="test-jwt-secret-for-unit-tests-only",
        jwt_issuer="loanservice-test",
        backup_code_pepper="test-pepper",
        session_sweep_interval_seconds=0,
    )


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db, settings):
    def _get_db_override():
        yield db

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(db, email="borrower@example.com", password=PASSWORD, role=UserRole.USER) -> User:
    user = User(
        email=email.lower(),
        password_hash=security.hash_password(password),
        first_name="Test",
        last_name="User",
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def enable_2fa(db, settings, user):
    """Run setup + verify for ``user``; returns (secret, backup_codes)."""
    setup = two_factor_service.setup_start(db, settings, user.id, user.email)
    secret = setup["manualEntryKey"]
    result = two_factor_service.verify_setup(db, settings, user.id, pyotp.TOTP(secret).now())
    return secret, result["backupCodes"]


def wrong_totp(secret: str) -> str:
    """A well-formed 6-digit code that is not valid for any step in the skew window."""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now + offset) for offset in (-60, -30, 0, 30, 60)}
    candidate = 0
    while f"{candidate:06d}" in valid:
        candidate += 1
    return f"{candidate:06d}"


@pytest.fixture()
def user(db):
    return make_user(db)


@pytest.fixture()
def admin(db):
    return make_user(db, email="admin@example.com", role=UserRole.ADMIN)
