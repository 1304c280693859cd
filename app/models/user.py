import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from app.core.time import utcnow
from app.db.base import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # stored lower-cased; lookups normalise the same way
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), default=UserRole.USER, nullable=False)
    account_verified = Column(Boolean, default=False, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    last_login_utc = Column(DateTime(timezone=True), nullable=True)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at_utc = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    two_factor = relationship("TwoFactorConfig", back_populates="user", uselist=False, cascade="all, delete-orphan")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    login_challenges = relationship("LoginChallenge", back_populates="user", cascade="all, delete-orphan")
