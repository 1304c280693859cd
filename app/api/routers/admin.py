from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_admin
from app.core.config import Settings, get_settings
from app.schemas.user import AdminUserOut
from app.services import auth_service, credential_store as store
from app.services.session_guard import Identity

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=List[AdminUserOut])
def list_users(db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    out = []
    for user in store.list_users(db):
        config = user.two_factor
        out.append(
            AdminUserOut(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                role=user.role,
                account_verified=user.account_verified,
                two_factor_enabled=bool(config and config.is_enabled),
                last_login_utc=user.last_login_utc,
                created_at_utc=user.created_at_utc,
            )
        )
    return out


@router.post("/sessions/sweep")
def sweep_sessions(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: Identity = Depends(require_admin),
):
    return {"removed": auth_service.sweep_expired(db, settings)}
