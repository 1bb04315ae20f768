"""Errors raised while resolving and calling an upstream.

Each carries the HTTP status the gateway answers with. A backend that
responds with a non-2xx status is not an error here; its response is
passed through unchanged.
"""


class UpstreamError(Exception):
    status_code: int = 502

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UpstreamNotFoundError(UpstreamError):
    """No upstream is configured for the requested model."""

    status_code = 404

    def __init__(self, model: str):
        self.model = model
        super().__init__(f'No upstream configuration found for model "{model}"')


class UpstreamUnavailableError(UpstreamError):
    """The outbound call failed before a response arrived."""

    status_code = 502

    def __init__(self, message: str, url: str):
        self.url = url
        super().__init__(message)


class UpstreamTimeoutError(UpstreamUnavailableError):
    """The request deadline elapsed before the upstream responded."""

    status_code = 504


class InvalidUpstreamResponseError(UpstreamError):
    """The upstream answered without a body to stream back."""

    status_code = 502

    def __init__(self, message: str, url: str, upstream_status: int):
        self.url = url
        self.upstream_status = upstream_status
        super().__init__(message)
