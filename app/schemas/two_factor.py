from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TotpCodeRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    token: str = Field(..., pattern=r"^\d{6}$", description="6-digit TOTP code")


class DisableTwoFactorRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    token: str = Field(..., min_length=6, max_length=8, description="TOTP or backup code")
    password: str = Field(..., min_length=1)


class TwoFactorSetupResponse(BaseModel):
    message: str
    qrCode: str
    otpauthUrl: str
    manualEntryKey: str
    backupCodes: Optional[List[str]] = None


class BackupCodesResponse(BaseModel):
    message: str
    backupCodes: List[str]
    warning: str


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    setup_initiated: bool
    backup_codes_remaining: int
    last_used: Optional[datetime] = None
