from functools import lru_cache
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    All config comes from .env file.
    Change values in .env — they automatically apply everywhere.
    """

    # ── Database ──────────────────────────────────────────
    DATABASE_URL: str                   # asyncpg — used by FastAPI
    DATABASE_SYNC_URL: str | None = None  # psycopg2 — used only by Alembic

    # ── JWT ───────────────────────────────────────────────
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ── CORS ──────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── App ───────────────────────────────────────────────
    APP_ENV: str = "production"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Event status scheduler ────────────────────────────
    EVENT_STATUS_UPDATE_INTERVAL: int = 5          # minutes between automatic passes
    ENABLE_AUTO_STATUS_UPDATES: bool = True
    EVENT_STATUS_STALENESS_MINUTES: int = 5        # skip events reconciled more recently
    EVENT_STATUS_STARTUP_DELAY_SECONDS: float = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("EVENT_STATUS_UPDATE_INTERVAL", "EVENT_STATUS_STALENESS_MINUTES")
    @classmethod
    def _positive_minutes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive number of minutes")
        return v

    @field_validator("EVENT_STATUS_STARTUP_DELAY_SECONDS")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("startup delay cannot be negative")
        return v

    @property
    def origins_list(self) -> list[str]:
        """Splits comma-separated ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# Single instance used across the entire app
settings = get_settings()
