from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import client_ip, get_db, get_optional_token
from app.core.config import Settings, get_settings
from app.schemas.auth import (
    CompleteTwoFactorLoginRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
)
from app.schemas.user import UserSummary
from app.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    outcome = auth_service.register(
        db,
        settings,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return TokenResponse(
        message="User created successfully",
        token=outcome.token,
        expires_at=outcome.expires_at,
        user=UserSummary.model_validate(outcome.user),
    )


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    outcome = auth_service.login(
        db,
        settings,
        body.email,
        body.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    user = UserSummary.model_validate(outcome.user)
    if outcome.requires_2fa:
        return LoginResponse(
            message="Password verified. 2FA required.",
            requires_2fa=True,
            session_token=outcome.pending_token,
            expires_at=outcome.expires_at,
            user=user,
        )
    return LoginResponse(
        message="Login successful",
        token=outcome.token,
        token_type="bearer",
        expires_at=outcome.expires_at,
        user=user,
    )


@router.post("/complete-2fa-login", response_model=TokenResponse, response_model_exclude_none=True)
def complete_two_factor_login(
    body: CompleteTwoFactorLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    outcome = auth_service.complete_two_factor_login(
        db,
        settings,
        body.session_token,
        body.totp_token,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return TokenResponse(
        message="Login completed successfully",
        token=outcome.token,
        expires_at=outcome.expires_at,
        user=UserSummary.model_validate(outcome.user),
        warning=outcome.warning,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(token: str | None = Depends(get_optional_token), db: Session = Depends(get_db)):
    auth_service.logout(db, token)
    return MessageResponse(message="Logged out successfully")
