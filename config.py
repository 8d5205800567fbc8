"""
Application Configuration

Environment-driven settings via pydantic-settings. Values come from the
process environment or a local .env file; get_settings() is cached so the
whole process shares one instance.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "catalog"

    # API
    api_prefix: str = "/api"
    cors_origins: List[str] = ["*"]
    port: int = 8000

    # Auth
    auth_secret: str = "dev-secret-change-me"
    session_ttl_days: int = 7
    # Ordered: the first source that yields a token wins
    token_sources: List[str] = ["header"]
    session_cookie_names: List[str] = [
        "catalog.session_token",
        "__Secure-catalog.session_token",
    ]

    # Bootstrap admin, skipped when either is unset
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_full_name: str = "Admin User"

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
