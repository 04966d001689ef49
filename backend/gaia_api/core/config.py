from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, Field, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "Gaia Commons API"
    VERSION: str = "5.0.0"
    API_V1_STR: str = "/api"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Application database (PostgreSQL)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "gaia_commons"
    DB_USER: str = "gaia_user"
    DB_PASSWORD: str = "gaia_password"

    # Connection pool. All durations are milliseconds.
    DB_POOL_MAX: int = Field(default=20, ge=1)
    # Callers allowed to queue for a connection; 0 = unbounded
    DB_POOL_MAX_WAITING: int = Field(default=0, ge=0)
    DB_IDLE_TIMEOUT: int = Field(default=30_000, ge=0)
    DB_CONNECTION_TIMEOUT: int = Field(default=2_000, ge=0)
    # 0 disables statement_timeout
    DB_STATEMENT_TIMEOUT: int = Field(default=30_000, ge=0)
    DB_SLOW_QUERY_THRESHOLD: int = Field(default=1_000, ge=0)
    DB_SHUTDOWN_GRACE_PERIOD: int = Field(default=10_000, ge=0)

    # Startup connectivity gate (fixed delay between attempts)
    DB_CONNECT_RETRIES: int = Field(default=3, ge=1)
    DB_CONNECT_RETRY_DELAY: int = Field(default=1_000, ge=0)


settings = Settings()  # type: ignore
