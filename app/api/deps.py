from typing import Iterator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db.session import SessionLocal
from app.services.session_guard import Identity, authenticate_bearer, ensure_admin

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_optional_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    if credentials is None:
        return None
    return credentials.credentials


def get_current_identity(
    request: Request,
    token: str | None = Depends(get_optional_token),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Identity:
    identity = authenticate_bearer(db, settings, token)
    request.state.identity = identity
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    return ensure_admin(identity)


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
