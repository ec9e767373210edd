"""
Configuration for the transport helpers: default timeouts and HTTP debug tracing.
Values are taken from explicit arguments first, then from environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_REQUEST_TIMEOUT = "FETCH_SSE_TIMEOUT_MS"
ENV_SSE_TIMEOUT = "FETCH_SSE_STREAM_TIMEOUT_MS"
ENV_HTTP_DEBUG = "FETCH_SSE_HTTP_DEBUG"

DEFAULT_REQUEST_TIMEOUT_MS = 5000
DEFAULT_SSE_TIMEOUT_MS = 30000

_TRUTHY = {"1", "true", "yes", "on"}


def _timeout_from(value: int | None, env_name: str, default: int) -> int:
    if value is None:
        raw = os.getenv(env_name, "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"{env_name} must be an integer number of milliseconds, got {raw!r}") from None

    if value <= 0:
        raise ValueError(f"Timeout must be a positive number of milliseconds, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """
    Settings shared by every request issued through an ``HttpTransport``.

    ``request_timeout_ms`` bounds one-shot requests, ``sse_timeout_ms`` bounds
    the arrival of a streaming response (not the lifetime of its body).
    """

    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    sse_timeout_ms: int = DEFAULT_SSE_TIMEOUT_MS
    debug_http: bool = False

    @staticmethod
    def from_env_or_value(
        *,
        request_timeout_ms: int | None = None,
        sse_timeout_ms: int | None = None,
        debug_http: bool | None = None,
    ) -> ClientConfig:
        """
        Build a ClientConfig from explicit values, falling back to the environment.

        Args:
            request_timeout_ms: Timeout for one-shot requests.
            sse_timeout_ms: Timeout for the response of a streaming request.
            debug_http: Enable request/response tracing through logging.

        Returns:
            A ClientConfig with every field resolved.

        Raises:
            ValueError: If a timeout is not a positive integer.
        """
        if debug_http is None:
            debug_http = os.getenv(ENV_HTTP_DEBUG, "").lower() in _TRUTHY

        return ClientConfig(
            request_timeout_ms=_timeout_from(request_timeout_ms, ENV_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT_MS),
            sse_timeout_ms=_timeout_from(sse_timeout_ms, ENV_SSE_TIMEOUT, DEFAULT_SSE_TIMEOUT_MS),
            debug_http=debug_http,
        )
