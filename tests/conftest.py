"""Shared fixtures for the Chat Proxy test suite."""

import json

import httpx
import pytest

from chat_proxy.config.settings import get_settings
from chat_proxy.config.upstreams import ProxyConfig, UpstreamConfig, get_proxy_config


@pytest.fixture
def gpt4_upstream() -> UpstreamConfig:
    return UpstreamConfig(
        name_model="gpt-4",
        base_url="https://a/v1",
        api_key="sk-upstream-a",
        request_model="gpt-4-turbo",
    )


@pytest.fixture
def proxy_config(gpt4_upstream) -> ProxyConfig:
    """Two routed upstreams plus a legacy fallback."""
    return ProxyConfig(
        upstream_configs=(
            gpt4_upstream,
            UpstreamConfig(
                name_model="llama-3",
                base_url="https://b/v1/chat/completions",
                request_model="meta-llama-3-70b",
            ),
        ),
        upstream_base_url="https://legacy/v1",
        upstream_api_key="sk-legacy",
        upstream_model_override=None,
    )


@pytest.fixture
def chat_request_body() -> dict:
    """Standard chat completions request body."""
    return {
        "model": "gpt-4",
        "messages": [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Hello, how are you?"},
        ],
    }


@pytest.fixture
def upstreams_json_file(tmp_path):
    """Create a temp upstreams.json file and return its path."""
    data = {
        "upstreams": [
            {
                "name_model": "file-model",
                "base_url": "https://file.example/v1/chat/completions",
                "api_key": "sk-file",
            },
        ]
    }
    path = tmp_path / "upstreams.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(UPSTREAM_BASE_URL="https://legacy", REQUEST_TIMEOUT_MS="500")
    """
    for name in (
        "UPSTREAM_CONFIGS",
        "UPSTREAM_CONFIG_PATH",
        "UPSTREAM_BASE_URL",
        "UPSTREAM_API_KEY",
        "UPSTREAM_MODEL_OVERRIDE",
        "REQUEST_TIMEOUT_MS",
    ):
        monkeypatch.delenv(name, raising=False)

    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()
        get_proxy_config.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()
    get_proxy_config.cache_clear()


class RecordingLogger:
    """Request logger that keeps every call for assertions."""

    def __init__(self):
        self.entries: list[tuple[str, str, str, dict]] = []

    async def __call__(self, request_id: str, level: str, message: str, metadata: dict) -> None:
        self.entries.append((request_id, level, message, metadata))


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


class ChunkStream(httpx.AsyncByteStream):
    """Upstream body that is only read when iterated, like a real socket."""

    def __init__(self, chunks: list[bytes]):
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def stream_response():
    """Factory fixture: build an unread upstream response.

    Usage:
        stream_response(200, [b"data: ...\\n\\n"], headers={"content-type": "text/event-stream"})
        stream_response(500, json_body={"err": 1})
        stream_response(200, [b"{}"], headers=[("set-cookie", "a=1"), ("set-cookie", "b=2")])
    """
    def _make(status_code=200, chunks=None, headers=None, json_body=None) -> httpx.Response:
        headers = httpx.Headers(headers)
        if json_body is not None:
            chunks = [json.dumps(json_body).encode("utf-8")]
            headers.setdefault("content-type", "application/json")
        return httpx.Response(status_code, headers=headers, stream=ChunkStream(chunks or []))

    return _make
