from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.time import utcnow
from app.db.base import Base


class TwoFactorConfig(Base):
    """
    Per-user TOTP configuration.

    ``is_enabled`` only flips after a code from the authenticator has been
    verified; backup codes live in ``user_backup_codes`` and exist only while
    2FA is enabled.
    """
    __tablename__ = "user_two_factor"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    secret = Column(String(64), nullable=False)
    is_enabled = Column(Boolean, default=False, nullable=False)
    setup_initiated_at_utc = Column(DateTime(timezone=True), nullable=True)
    last_used_at_utc = Column(DateTime(timezone=True), nullable=True)
    backup_codes_used = Column(Integer, default=0, nullable=False)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="two_factor")


class BackupCode(Base):
    """One unused backup code, stored as a keyed hash. Consumed codes are deleted."""
    __tablename__ = "user_backup_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(64), nullable=False)
    position = Column(Integer, nullable=False)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "code_hash", name="uq_backup_code_user_hash"),)
