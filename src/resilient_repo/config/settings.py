from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.config_validators import to_uppercase, to_lowercase, require_positive


class Settings(BaseSettings):
    """
    Settings for the repository layer, loaded from the environment (or a `.env` file).
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Database configuration
    POSTGRES_DRIVER: str = "asyncpg"
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "postgres"

    # Full SQLAlchemy URL; when set it wins over the POSTGRES_* parts
    # (e.g. "mssql+aioodbc://..." or "sqlite+aiosqlite:///./local.db").
    DATABASE_URL_OVERRIDE: str | None = None

    # SQLAlchemy
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_PRE_PING: bool = True

    # Retry policy
    REPO_MAX_RETRY_COUNT: int = 11
    REPO_TIMEOUT_SECONDS: float = 60

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/resilient-repo")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_SQL_LOGGING: bool = False

    # --- Derived settings ---
    @property
    def DATABASE_URL(self) -> str:
        """
        Return the SQLAlchemy URL used to build the async engine.

        DATABASE_URL_OVERRIDE is returned verbatim when present; otherwise the URL
        is assembled from the POSTGRES_* parts.
        """
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE

        return (
            f"postgresql+{self.POSTGRES_DRIVER}://"
            f"{self.POSTGRES_USERNAME}:{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize LOG_LEVEL to uppercase before the Literal check runs.
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", mode="before")
    def normalize_log_format(cls, v: str | None) -> str | None:
        return to_lowercase(v)

    @field_validator("REPO_MAX_RETRY_COUNT", "REPO_TIMEOUT_SECONDS")
    def check_positive(cls, v):
        # A retry ceiling of 0 would make the policy a no-op.
        return require_positive(v)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# get_settings() takes no arguments and always returns the same settings from the environment,
# so caching it with @lru_cache() avoids re-reading the environment on every repository.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
