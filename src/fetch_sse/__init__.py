from __future__ import annotations

from fetch_sse._body import FormData
from fetch_sse._client import (
    HttpTransport,
    amake_http_request,
    amake_sse_request,
    join_url_with_params,
    make_http_request,
    make_sse_request,
)
from fetch_sse._config import ClientConfig
from fetch_sse._errors import (
    APIStatusError,
    DecodeSessionPending,
    FetchSSEError,
    RequestTimeoutError,
    SSEProtocolError,
)
from fetch_sse._sse import AsyncFrameDecoder, FrameDecoder, extract_frame

__all__ = [
    "APIStatusError",
    "AsyncFrameDecoder",
    "ClientConfig",
    "DecodeSessionPending",
    "FetchSSEError",
    "FormData",
    "FrameDecoder",
    "HttpTransport",
    "RequestTimeoutError",
    "SSEProtocolError",
    "amake_http_request",
    "amake_sse_request",
    "extract_frame",
    "join_url_with_params",
    "make_http_request",
    "make_sse_request",
]

__version__ = "0.1.0"
