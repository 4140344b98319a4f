"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "OneFocus Sync Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://onefocus@localhost:5432/onefocus"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "onefocus"

    # Supabase Auth verifies the bearer tokens sent to /sync.
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_role_key: str | None = None
    auth_timeout_seconds: float = 10.0

    # Client-side sync layer.
    sync_api_base_url: str = "http://localhost:8000"
    sync_debounce_seconds: float = 2.0
    sync_request_timeout_seconds: float = 15.0
    sync_state_path: str = ".onefocus/one-app.json"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
