"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROPERTIES_TO_REMOVE = [
    "(.*)transition(.*)",
    "cursor",
    "pointer-events",
    "(-webkit-)?tap-highlight-color",
    "(.*)user-select",
]


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "foldcss"
    environment: str = "development"
    debug: bool = True
    log_json: bool = True

    api_v1_prefix: str = "/v1"
    cors_allowed_origins: List[str] = ["*"]

    redis_url: str = "redis://localhost:6379/0"

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    # Extraction defaults, overridable per request.
    default_viewport_width: int = 1300
    default_viewport_height: int = 900
    extraction_timeout_ms: int = 30_000
    render_wait_time_ms: int = 100
    block_js_requests: bool = True
    max_embedded_base64_length: int = 1000
    user_agent: str = "foldcss critical path CSS generator"
    properties_to_remove: List[str] = DEFAULT_PROPERTIES_TO_REMOVE
    clearing_properties: List[str] = ["clear", "float", "overflow", "overflow-x", "overflow-y"]
    query_concurrency: int = 8
    # Directory HTTP callers may read stylesheets from; unset disables css_file_path over HTTP.
    stylesheet_root: Optional[str] = None

    browser_headless: bool = True
    browser_keep_alive: bool = False
    browser_max_open_pages: int = 4
    browser_launch_args: List[str] = []
    browser_default_headers: Dict[str, str] = {}

    auth_api_key: Optional[str] = "change-me"
    auth_token_header: str = "Authorization"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
