import logging

from sqlalchemy.orm import Session

from app.core import security
from app.core.config import Settings
from app.models import UserRole
from app.services import credential_store as store
from app.services.credential_store import atomic

logger = logging.getLogger(__name__)


def seed_admin(db: Session, settings: Settings):
    """Create the configured admin account for a fresh database."""
    if not settings.seed_admin_email or not settings.seed_admin_password:
        return None
    if store.email_exists(db, settings.seed_admin_email):
        return None

    with atomic(db):
        admin = store.create_user(
            db,
            email=settings.seed_admin_email,
            password_hash=security.hash_password(settings.seed_admin_password),
            first_name="Admin",
            last_name="User",
            role=UserRole.ADMIN,
        )
    logger.info(f"Seeded admin account {admin.email}")
    return admin
