"""Outbound call to a resolved upstream.

The request deadline is measured from the start of `call_upstream` and only
covers the wait for response headers. The body is handed back unread; the
caller streams it and closes the response.
"""

import asyncio

import httpx

from chat_proxy.config.settings import get_settings
from chat_proxy.config.upstreams import UpstreamConfig
from chat_proxy.logging.audit import RequestLogger, get_audit_logger, log_request
from chat_proxy.proxy.errors import (
    InvalidUpstreamResponseError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

# Statuses that never carry a body
_BODYLESS_STATUSES = {204, 205, 304}


class UpstreamClient:
    """Sends chat completion requests to OpenAI-compatible upstreams."""

    def __init__(self, request_logger: RequestLogger = log_request, connect_timeout: float | None = None):
        self._client: httpx.AsyncClient | None = None
        self._request_logger = request_logger
        self._connect_timeout = connect_timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            connect = self._connect_timeout
            if connect is None:
                connect = get_settings().upstream_connect_timeout
            # Overall deadline is enforced per call; the body may stream for as long as it needs.
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(None, connect=connect))
        return self._client

    @staticmethod
    def _build_headers(api_key: str | None) -> dict:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def _log(self, request_id: str, level: str, message: str, metadata: dict) -> None:
        try:
            await self._request_logger(request_id, level, message, metadata)
        except Exception as e:
            get_audit_logger().warning(
                "Request logger failed",
                extra={"audit_data": {
                    "request_id": request_id,
                    "log_message": message,
                    "error": repr(e),
                }},
            )

    async def call_upstream(
        self,
        body: dict,
        upstream: UpstreamConfig,
        request_timeout_ms: int,
        request_id: str,
    ) -> httpx.Response:
        """POST *body* to the upstream and return the unconsumed response.

        Raises:
            UpstreamTimeoutError: the deadline elapsed before headers arrived.
            UpstreamUnavailableError: the request could not be sent or answered.
            InvalidUpstreamResponseError: the response has no body.
        """
        deadline = asyncio.get_running_loop().time() + request_timeout_ms / 1000
        url = upstream.base_url
        headers = self._build_headers(upstream.api_key)

        await self._log(request_id, "debug", "Sending upstream request", {
            "url": url,
            "upstream_request_body": body,
        })

        client = await self._get_client()
        try:
            request = client.build_request("POST", url, json=body, headers=headers)
            async with asyncio.timeout_at(deadline):
                response = await client.send(request, stream=True)
        except TimeoutError as e:
            raise UpstreamTimeoutError(
                f"Upstream did not respond within {request_timeout_ms} ms", url=url
            ) from e
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"Upstream timed out: {e}", url=url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamUnavailableError(f"Cannot reach upstream: {e}", url=url) from e

        try:
            await self._log(request_id, "debug", "Upstream response received", {
                "status": response.status_code,
            })

            if not _has_body(response):
                raise InvalidUpstreamResponseError(
                    "Upstream response has no body", url=url, upstream_status=response.status_code
                )
        except BaseException:
            # Includes cancellation
            await response.aclose()
            raise

        return response

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _has_body(response: httpx.Response) -> bool:
    if response.status_code in _BODYLESS_STATUSES:
        return False
    return response.headers.get("content-length") != "0"


_upstream_client: UpstreamClient | None = None


def get_upstream_client() -> UpstreamClient:
    """Get or create the process-wide upstream client."""
    global _upstream_client
    if _upstream_client is None:
        _upstream_client = UpstreamClient()
    return _upstream_client


async def close_upstream_client() -> None:
    """Gracefully close the shared client on shutdown."""
    global _upstream_client
    if _upstream_client is not None:
        await _upstream_client.close()
        _upstream_client = None
