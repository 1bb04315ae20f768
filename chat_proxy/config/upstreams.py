"""Upstream routing configuration.

`ProxyConfig` is built once from `Settings` and shared read-only by every
request. Reloading means clearing the cache and building a new value as a
whole; nothing mutates an existing instance.
"""

import json
from dataclasses import dataclass, field
from functools import lru_cache

from chat_proxy.config.settings import Settings, get_settings


@dataclass(frozen=True)
class UpstreamConfig:
    name_model: str  # model name a client sends to be routed here
    base_url: str  # full URL the request is POSTed to
    api_key: str | None = None
    request_model: str = ""  # backend-side model name (aliasing)


@dataclass(frozen=True)
class ProxyConfig:
    upstream_configs: tuple[UpstreamConfig, ...] = field(default_factory=tuple)
    # Legacy single-backend fallback
    upstream_base_url: str | None = None
    upstream_api_key: str | None = None
    upstream_model_override: str | None = None
    request_timeout_ms: int = 120_000


def parse_upstream_entry(entry: dict, index: int) -> UpstreamConfig:
    """Build an UpstreamConfig from one raw config entry.

    `request_model` defaults to `name_model`; an empty `api_key` means no key.
    """
    if not isinstance(entry, dict):
        raise ValueError(f"Upstream entry {index} must be an object")

    try:
        upstream = UpstreamConfig(**entry)
    except TypeError as exc:
        raise ValueError(f"Invalid upstream entry {index}: {exc}") from exc

    if not upstream.name_model:
        raise ValueError(f"Upstream entry {index}: name_model must not be empty")
    if not upstream.base_url:
        raise ValueError(f"Upstream entry {index}: base_url must not be empty")

    return UpstreamConfig(
        name_model=upstream.name_model,
        base_url=upstream.base_url,
        api_key=upstream.api_key or None,
        request_model=upstream.request_model or upstream.name_model,
    )


def _read_upstream_file(path: str) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict) or not isinstance(data.get("upstreams", []), list):
        raise ValueError(f"{path} must contain a top-level 'upstreams' list")
    return data.get("upstreams", [])


def load_proxy_config(settings: Settings) -> ProxyConfig:
    """Build the immutable ProxyConfig from settings."""
    raw_entries = list(settings.upstream_configs)
    if settings.upstream_config_path:
        raw_entries.extend(_read_upstream_file(settings.upstream_config_path))

    upstreams = tuple(
        parse_upstream_entry(entry, index) for index, entry in enumerate(raw_entries)
    )

    return ProxyConfig(
        upstream_configs=upstreams,
        upstream_base_url=settings.upstream_base_url or None,
        upstream_api_key=settings.upstream_api_key or None,
        upstream_model_override=settings.upstream_model_override or None,
        request_timeout_ms=settings.request_timeout_ms,
    )


@lru_cache
def get_proxy_config() -> ProxyConfig:
    return load_proxy_config(get_settings())
