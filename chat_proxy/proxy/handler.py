"""Proxy handler — resolve the upstream for a model, then call it."""

import httpx

from chat_proxy.config.upstreams import get_proxy_config
from chat_proxy.proxy.invoker import close_upstream_client, get_upstream_client
from chat_proxy.proxy.resolver import select_upstream_config


async def forward_chat_completion(body: dict, client_model: str, request_id: str) -> httpx.Response:
    """Route a chat completion request to the upstream serving *client_model*."""
    config = get_proxy_config()
    upstream = select_upstream_config(config, client_model)
    return await get_upstream_client().call_upstream(
        body=body,
        upstream=upstream,
        request_timeout_ms=config.request_timeout_ms,
        request_id=request_id,
    )


async def close_client() -> None:
    """Gracefully close upstream connections on shutdown."""
    await close_upstream_client()
