"""Application settings.

All values are read from the environment with the ``WAYPOINT_`` prefix.
Nested sections use ``__`` as the delimiter, e.g.
``WAYPOINT_DATABASE__URL=postgresql+asyncpg://...``.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./waypoint.db"
    echo: bool = False


class APISettings(BaseModel):
    """Uvicorn server settings."""

    host: str = "0.0.0.0"
    port: int = 8001
    reload: bool = False


class SecuritySettings(BaseModel):
    """API key and CORS settings."""

    api_key: str = ""
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class RateLimitSettings(BaseModel):
    """Requests per minute, per caller. Mutating requests use the strict limit."""

    default_per_minute: int = 120
    strict_per_minute: int = 30


class SideEffectSettings(BaseModel):
    """Background side effect pool."""

    max_concurrency: int = Field(default=8, ge=1)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_output: bool = True


class Settings(BaseSettings):
    """Top-level Waypoint settings."""

    model_config = SettingsConfigDict(
        env_prefix="WAYPOINT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    environment: str = Field(default="development", pattern="^(development|production|test)$")
    debug: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: APISettings = Field(default_factory=APISettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    side_effects: SideEffectSettings = Field(default_factory=SideEffectSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
