"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Model-routed upstreams
    # JSON list of {"name_model", "base_url", "api_key", "request_model"} objects
    upstream_configs: list[dict[str, str | None]] = []
    upstream_config_path: str = ""  # optional JSON file, appended after inline entries

    # Legacy single-backend fallback (empty base URL = disabled)
    upstream_base_url: str = ""
    upstream_api_key: str = ""
    upstream_model_override: str = ""

    # Outbound call timeouts
    request_timeout_ms: int = 120_000
    upstream_connect_timeout: float = 10.0  # seconds

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
