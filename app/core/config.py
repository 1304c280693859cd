from functools import lru_cache
from typing import List

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | List[str]) -> List[str]:
    if isinstance(value, list):
        return value
    return [v.strip() for v in str(value).split(",") if v and v.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LOANSERVICE_",
        extra="ignore",
    )

    app_name: str = "Esoteric Loan Servicing API"
    database_url: str = "sqlite:///./loanservice.db"
    db_echo: bool = False
    db_timeout_seconds: int = 10

    # values must come from environment/.env to avoid hardcoding secrets
    jwt_secret: str = ""
    jwt_issuer: str = "loanservice"
    allow_insecure_jwt: bool = False
    access_token_ttl_seconds: int = 3600

    pending_2fa_minutes: int = 10
    totp_issuer: str = "Esoteric Enterprises"
    totp_valid_window: int = 1

    backup_code_count: int = 10
    backup_code_pepper: str = ""

    two_factor_max_failures: int = 5
    two_factor_failure_window_minutes: int = 15

    login_max_failures: int = 10
    login_failure_window_minutes: int = 15

    session_sweep_interval_seconds: int = 300
    attempt_retention_hours: int = 24

    seed_admin_email: str = ""
    seed_admin_password: str = ""

    cors_origins_raw: str = "http://localhost:3000"
    enable_docs: bool = True

    @model_validator(mode="after")
    def _check_jwt_secret(self) -> "Settings":
        self.jwt_secret = self.jwt_secret.strip()
        if not self.jwt_secret and not self.allow_insecure_jwt:
            raise ValueError(
                "LOANSERVICE_JWT_SECRET is not set. Set it in .env, or set "
                "LOANSERVICE_ALLOW_INSECURE_JWT=1 for local development."
            )
        if self.access_token_ttl_seconds <= 0:
            raise ValueError("access_token_ttl_seconds must be > 0")
        return self

    @property
    def cors_origins(self) -> List[str]:
        parsed = _split_csv(self.cors_origins_raw)
        return parsed or ["http://localhost:3000"]

    @property
    def code_pepper(self) -> str:
        return self.backup_code_pepper or self.jwt_secret


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
