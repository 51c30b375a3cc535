# app/core/settings.py
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === App ===
    app_env: str = "local"  # local | development | production
    app_name: str = "Wholesale Pricing"

    # === Storage ===
    wholesale_db_path: str = Field(
        "wholesale.db", description="SQLite file holding settings, pricing rules and customer pricing"
    )

    # === Redis (optional price cache) ===
    redis_url: Optional[str] = None
    price_cache_ttl_seconds: int = 300
    type_cache_ttl_seconds: int = 300

    # === Logging ===
    log_level: str = "INFO"
    log_format: str = "auto"  # auto | json | console; auto is console only for local

    # === HTTP ===
    allowed_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide Settings; ENVIRONMENT adjusts log level and cache TTL."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
    elif env == "development":
        s.log_level = "DEBUG"
        s.price_cache_ttl_seconds = 30

    return s


def use_json_logs(s: Settings) -> bool:
    fmt = s.log_format.lower()
    if fmt in ("json", "console"):
        return fmt == "json"
    return s.app_env.lower() != "local"


settings = get_settings()
