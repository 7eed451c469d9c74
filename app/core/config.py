from functools import lru_cache
import json
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors_origins(value: str) -> list[str]:
    if not value:
        return []

    parsed: list[str]
    raw = value.strip()
    if raw.startswith("["):
        try:
            items = json.loads(raw)
            parsed = [str(item).strip() for item in items if str(item).strip()]
        except (TypeError, ValueError):
            parsed = []
    else:
        parsed = [origin.strip() for origin in raw.split(",") if origin.strip()]

    # Preserve order and remove duplicates.
    return list(dict.fromkeys(parsed))


def parse_roles(value: str) -> set[str]:
    return {item.strip().lower() for item in str(value or "").split(",") if item.strip()}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "LMS Announcements"
    environment: str = "development"
    api_v1_prefix: str = "/api/v1"

    # Security
    secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Database
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_timeout: int = 15
    db_pool_recycle: int = 1200
    db_pool_pre_ping: bool = True

    # Logging
    log_level: str = "INFO"

    # Announcements
    announcement_default_limit: int = 50
    announcement_max_limit: int = 100
    # Roles allowed to author announcements (comma-separated).
    author_roles: str = "teacher,instructor,admin"
    # Lets admins manage announcements they did not author.
    allow_admin_override: bool = False
    rate_limit_write: str = "30/minute"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:5173"
    auto_create_tables: bool = False

    frontend_base_url: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
