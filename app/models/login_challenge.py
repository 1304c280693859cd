import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.time import utcnow
from app.db.base import Base


class LoginChallenge(Base):
    """Pending 2FA session: password verified, second factor outstanding."""
    __tablename__ = "login_challenges"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    failed_attempts = Column(Integer, default=0, nullable=False)
    expires_at_utc = Column(DateTime(timezone=True), nullable=False)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="login_challenges")
