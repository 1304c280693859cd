from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings, get_settings


def build_engine(settings: Settings) -> Engine:
    url = settings.database_url
    if url.startswith("sqlite"):
        # sqlite busy timeout, in seconds
        connect_args = {"check_same_thread": False, "timeout": settings.db_timeout_seconds}
        return create_engine(url, echo=settings.db_echo, future=True, connect_args=connect_args)
    connect_args = {}
    if url.startswith("postgresql"):
        timeout_ms = settings.db_timeout_seconds * 1000
        connect_args = {
            "connect_timeout": settings.db_timeout_seconds,
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        }
    return create_engine(
        url,
        echo=settings.db_echo,
        future=True,
        pool_pre_ping=True,
        pool_timeout=settings.db_timeout_seconds,
        connect_args=connect_args,
    )


engine = build_engine(get_settings())
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
