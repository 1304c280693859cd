from sqlalchemy import Column, DateTime, Integer, String

from app.core.time import utcnow
from app.db.base import Base


class FailedLogin(Base):
    """One rejected password attempt. Successful logins are not recorded."""
    __tablename__ = "failed_login_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # normalised address as submitted; may not belong to any user
    email = Column(String(255), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True, index=True)
    attempted_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
