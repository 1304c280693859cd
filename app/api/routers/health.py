from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.errors import TransientStoreError
from app.core.time import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as exc:
        raise TransientStoreError("Database unavailable") from exc
    return {
        "status": "healthy",
        "database": "connected",
        "timestamp": utcnow().isoformat(),
        "features": ["2FA", "JWT Sessions", "TOTP", "Backup Codes"],
    }
