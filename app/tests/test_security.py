import base64
import json
import time

import jwt

from app.core import security
from app.core.security import TokenStatus


def _b64(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def test_token_lifetime_is_exactly_one_hour(settings):
    issued = security.create_session_token("user-1", "a@example.com", settings)
    claims = jwt.decode(issued.token, options={"verify_signature": False})
    assert claims["exp"] - claims["iat"] == 3600
    assert claims["sub"] == "user-1"
    assert claims["email"] == "a@example.com"
    assert issued.expires_at.timestamp() == claims["exp"]


def test_tokens_minted_back_to_back_differ(settings):
    first = security.create_session_token("user-1", "a@example.com", settings)
    second = security.create_session_token("user-1", "a@example.com", settings)
    assert first.token != second.token


def test_valid_token_checks_out(settings):
    issued = security.create_session_token("user-1", "a@example.com", settings)
    check = security.check_token(issued.token, settings)
    assert check.ok
    assert check.claims["sub"] == "user-1"


def test_expired_token_is_reported_not_raised(settings):
    now = int(time.time())
    token = jwt.encode(
        {"sub": "user-1", "iss": settings.jwt_issuer, "iat": now - 7200, "exp": now - 3600, "type": "access"},
        settings.jwt_secret,
        algorithm="HS256",
    )
    assert security.check_token(token, settings).status is TokenStatus.EXPIRED


def test_flipped_signature_is_invalid(settings):
    token = security.create_session_token("user-1", "a@example.com", settings).token
    head, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    assert security.check_token(f"{head}.{payload}.{flipped}", settings).status is TokenStatus.INVALID


def test_modified_payload_with_original_signature_is_invalid(settings):
    token = security.create_session_token("user-1", "a@example.com", settings).token
    head, payload, signature = token.split(".")
    claims = jwt.decode(token, options={"verify_signature": False})
    claims["sub"] = "user-2"
    assert security.check_token(f"{head}.{_b64(claims)}.{signature}", settings).status is TokenStatus.INVALID


def test_malformed_and_foreign_tokens_are_invalid(settings):
    assert security.check_token("not-a-token", settings).status is TokenStatus.INVALID
    assert security.check_token("a.b", settings).status is TokenStatus.INVALID
    assert security.check_token("", settings).status is TokenStatus.INVALID
    foreign = jwt.encode(
        {"sub": "user-1", "iss": settings.jwt_issuer, "iat": int(time.time()), "exp": int(time.time()) + 60},
        "some-other-secret",
        algorithm="HS256",
    )
    assert security.check_token(foreign, settings).status is TokenStatus.INVALID


def test_password_hashing():
    hashed = security.hash_password("Secret123!")
    assert security.verify_password("Secret123!", hashed)
    assert not security.verify_password("wrong", hashed)
    assert not security.verify_password("Secret123!", None)
