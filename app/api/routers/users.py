from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_identity, get_db
from app.schemas.user import ProfileOut, TwoFactorBrief
from app.services import credential_store as store
from app.services.session_guard import Identity

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/profile", response_model=ProfileOut)
def profile(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    user = store.find_user_by_id(db, identity.user_id)
    config = store.get_2fa_config(db, user.id)
    two_factor = TwoFactorBrief(
        enabled=bool(config and config.is_enabled),
        last_used=config.last_used_at_utc if config else None,
    )
    return ProfileOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        phone=user.phone,
        account_verified=user.account_verified,
        last_login_utc=user.last_login_utc,
        created_at_utc=user.created_at_utc,
        two_factor=two_factor,
    )
