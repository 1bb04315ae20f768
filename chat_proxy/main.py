"""Chat Proxy — FastAPI application entry point.

Routes OpenAI-style chat completion requests to an upstream chosen by the
requested model name and streams the upstream response back unchanged.
"""

import json
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from chat_proxy.config.upstreams import get_proxy_config
from chat_proxy.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from chat_proxy.proxy.errors import UpstreamError
from chat_proxy.proxy.handler import close_client, forward_chat_completion
from chat_proxy.proxy.resolver import list_model_names

VERSION = "0.1.0"

# Upstream headers that must not be relayed; the proxy sets its own request id
_UNRELAYED_HEADERS = {
    "x-request-id",
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Proxy started")
    yield
    await close_client()
    get_audit_logger().info("Proxy stopped")


app = FastAPI(
    title="Chat Proxy",
    description="Model-routed proxy for OpenAI-compatible chat completions",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(UpstreamError)
async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    get_audit_logger().warning(
        "Upstream request failed",
        extra={"audit_data": {
            "error": type(exc).__name__,
            "detail": exc.message,
            "status": exc.status_code,
        }},
    )
    headers = {}
    if request_id_var.get(""):
        headers["X-Request-Id"] = request_id_var.get("")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=headers,
    )


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/v1/models")
async def list_models():
    """OpenAI-style listing of the model names this proxy routes."""
    return {
        "object": "list",
        "data": [
            {"id": name, "object": "model", "owned_by": "chat-proxy"}
            for name in list_model_names(get_proxy_config())
        ],
    }


@app.post("/v1/chat/completions")
async def chat_completions(request: Request):
    """Proxy endpoint mirroring the OpenAI chat completions API.

    Pipeline: Parse -> Resolve upstream -> Forward -> Stream back -> Log
    """
    logger = get_audit_logger()
    rid = generate_request_id()
    request_id_var.set(rid)

    try:
        body = json.loads(await request.body(), parse_constant=_reject_constant)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"error": "Request body must be valid JSON"},
            headers={"X-Request-Id": rid},
        )

    model = body.get("model") if isinstance(body, dict) else None
    if not isinstance(model, str) or not model:
        return JSONResponse(
            status_code=400,
            content={"error": "Request body must include a 'model' string"},
            headers={"X-Request-Id": rid},
        )

    with RequestTimer() as timer:
        upstream = await forward_chat_completion(body, model, rid)

    logger.info(
        "Request proxied",
        extra={"audit_data": {
            "model": model,
            "upstream_url": str(upstream.request.url),
            "upstream_status": upstream.status_code,
            "latency_ms": timer.elapsed_ms,
            "stream": bool(body.get("stream", False)),
        }},
    )

    response = StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    for name, value in _relay_headers(upstream.headers):
        response.headers.append(name, value)
    response.headers["X-Request-Id"] = rid
    return response


def _reject_constant(name: str):
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def _relay_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    """End-to-end upstream headers, repeated ones (Set-Cookie) kept separate."""
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in _UNRELAYED_HEADERS
    ]
