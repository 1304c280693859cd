"""
2FA verification attempt log, used for throttling and audit.
"""
import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String

from app.core.time import utcnow
from app.db.base import Base


class AttemptPurpose(str, enum.Enum):
    """Which flow presented the code"""
    LOGIN = "Login"
    VERIFY_SETUP = "VerifySetup"
    DISABLE = "Disable"
    REGENERATE_CODES = "RegenerateCodes"


class TwoFactorAttempt(Base):
    __tablename__ = "user_2fa_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    purpose = Column(Enum(AttemptPurpose), nullable=False)
    success = Column(Boolean, nullable=False, default=False)
    token_used = Column(String(10), nullable=True)  # masked, e.g. "123*"
    ip_address = Column(String(45), nullable=True)
    attempted_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
