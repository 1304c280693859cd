from .user import User, UserRole
from .two_factor import BackupCode, TwoFactorConfig
from .session import UserSession
from .login_challenge import LoginChallenge
from .two_factor_attempt import AttemptPurpose, TwoFactorAttempt
from .failed_login import FailedLogin

__all__ = [
    "User",
    "UserRole",
    "TwoFactorConfig",
    "BackupCode",
    "UserSession",
    "LoginChallenge",
    "AttemptPurpose",
    "TwoFactorAttempt",
    "FailedLogin",
]
