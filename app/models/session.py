import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from app.core.time import utcnow
from app.db.base import Base


class UserSession(Base):
    """
    Server-side record backing one issued bearer token. Only the token hash is kept.

    This service only writes rows with ``is_2fa_complete`` set; the session guard
    still refuses any row without it, so a row written by another collaborator
    (an import, an admin tool, a partial login flow) never grants access.
    """
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    is_2fa_complete = Column(Boolean, default=False, nullable=False)
    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    user_agent = Column(Text, nullable=True)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at_utc = Column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="sessions")
