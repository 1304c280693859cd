from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from .user import UserSummary


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("last_name", "lastName"))
    phone: Optional[str] = Field(None, max_length=20, pattern=r"^\+?[\d\s\-\(\)]+$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class CompleteTwoFactorLoginRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    session_token: str = Field(..., min_length=1)
    totp_token: str = Field(..., min_length=6, max_length=8)


class TokenResponse(BaseModel):
    message: str
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserSummary
    warning: Optional[str] = None


class LoginResponse(BaseModel):
    message: str
    requires_2fa: bool = False
    token: Optional[str] = None
    token_type: Optional[str] = None
    session_token: Optional[str] = None
    expires_at: datetime
    user: UserSummary


class MessageResponse(BaseModel):
    message: str
