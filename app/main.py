import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.concurrency import run_in_threadpool

from app.api.routers import admin, auth, health, two_factor, users
from app.core.config import get_settings
from app.db.base import Base
from app.db.init_db import seed_admin
from app.db.session import SessionLocal, engine
from app.services.auth_service import sweep_expired

logger = logging.getLogger(__name__)

settings = get_settings()

docs_url = "/docs" if settings.enable_docs else None
redoc_url = "/redoc" if settings.enable_docs else None
openapi_url = "/openapi.json" if settings.enable_docs else None

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url=docs_url, redoc_url=redoc_url, openapi_url=openapi_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(auth.router)
app.include_router(two_factor.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(health.router)

NO_STORE_PREFIXES = ("/auth", "/2fa")


@app.middleware("http")
async def add_no_cache_headers(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(NO_STORE_PREFIXES):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


def _field_errors(errors) -> list:
    out = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        out.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
    return out


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": _field_errors(exc.errors())},
    )


@app.exception_handler(OperationalError)
@app.exception_handler(PoolTimeoutError)
async def store_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"Store unavailable on {request.url.path}: {exc.__class__.__name__}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})


def _run_sweep() -> dict:
    db = SessionLocal()
    try:
        return sweep_expired(db, settings)
    finally:
        db.close()


async def _sweep_loop(interval_seconds: int):
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(_run_sweep)
        except Exception:
            # advisory cleanup; expired rows are rejected on read anyway
            logger.exception("Expired-session sweep failed")


@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin(db, settings)
    finally:
        db.close()
    if settings.session_sweep_interval_seconds > 0:
        app.state.sweep_task = asyncio.create_task(_sweep_loop(settings.session_sweep_interval_seconds))


@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "sweep_task", None)
    if task is not None:
        task.cancel()
