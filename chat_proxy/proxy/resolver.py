"""Model name -> upstream resolution."""

from chat_proxy.config.upstreams import ProxyConfig, UpstreamConfig
from chat_proxy.proxy.errors import UpstreamNotFoundError


def select_upstream_config(config: ProxyConfig, client_model: str) -> UpstreamConfig:
    """Pick the upstream that serves *client_model*.

    Configured upstreams are scanned in order and the first exact
    `name_model` match wins. Without a match the legacy base URL, when set,
    yields a synthesized config for the requested model. Otherwise
    UpstreamNotFoundError is raised.
    """
    for upstream in config.upstream_configs:
        if upstream.name_model == client_model:
            return upstream

    if config.upstream_base_url:
        return UpstreamConfig(
            name_model=client_model,
            base_url=config.upstream_base_url,
            api_key=config.upstream_api_key,
            request_model=config.upstream_model_override or client_model,
        )

    raise UpstreamNotFoundError(client_model)


def list_model_names(config: ProxyConfig) -> list[str]:
    """Configured model names in routing order, duplicates dropped."""
    names: list[str] = []
    for upstream in config.upstream_configs:
        if upstream.name_model not in names:
            names.append(upstream.name_model)
    return names
