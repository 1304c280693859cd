from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.user import UserRole


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole

    model_config = {"from_attributes": True}


class TwoFactorBrief(BaseModel):
    enabled: bool
    last_used: Optional[datetime] = None


class ProfileOut(UserSummary):
    phone: Optional[str] = None
    account_verified: bool
    last_login_utc: Optional[datetime] = None
    created_at_utc: datetime
    two_factor: TwoFactorBrief


class AdminUserOut(UserSummary):
    account_verified: bool
    two_factor_enabled: bool
    last_login_utc: Optional[datetime] = None
    created_at_utc: datetime
