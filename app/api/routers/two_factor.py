from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import client_ip, get_current_identity, get_db
from app.core.config import Settings, get_settings
from app.schemas.auth import MessageResponse
from app.schemas.two_factor import (
    BackupCodesResponse,
    DisableTwoFactorRequest,
    TotpCodeRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from app.services import two_factor_service
from app.services.session_guard import Identity

router = APIRouter(prefix="/2fa", tags=["2fa"])


@router.post("/setup", response_model=TwoFactorSetupResponse)
def setup(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    return two_factor_service.setup_start(db, settings, identity.user_id, identity.email)


@router.post("/verify-setup", response_model=BackupCodesResponse)
def verify_setup(
    body: TotpCodeRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    return two_factor_service.verify_setup(db, settings, identity.user_id, body.token, client_ip(request))


@router.post("/disable", response_model=MessageResponse)
def disable(
    body: DisableTwoFactorRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    return two_factor_service.disable(db, settings, identity.user_id, body.token, body.password, client_ip(request))


@router.post("/generate-backup-codes", response_model=BackupCodesResponse)
def generate_backup_codes(
    body: TotpCodeRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    return two_factor_service.regenerate_backup_codes(db, settings, identity.user_id, body.token, client_ip(request))


@router.get("/status", response_model=TwoFactorStatusResponse)
def status(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    return two_factor_service.status(db, identity.user_id)
