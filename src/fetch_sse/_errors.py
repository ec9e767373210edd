from __future__ import annotations
from dataclasses import dataclass
from typing import Any


class FetchSSEError(RuntimeError):
    """Base error of the library."""


@dataclass(slots=True)
class RequestTimeoutError(FetchSSEError):
    """The response headers did not arrive within the configured window."""

    url: str
    timeout_ms: int

    def __str__(self) -> str:
        return f"Request to {self.url} timed out after {self.timeout_ms} ms"


class SSEProtocolError(FetchSSEError):
    """The byte stream does not follow the ``data: <payload>\\n\\n`` framing."""


class DecodeSessionPending(FetchSSEError):
    """The outcome of a decode session was read before the session ended."""


@dataclass(slots=True)
class APIStatusError(FetchSSEError):
    """
    Non-2xx response turned into an exception by ``HttpTransport.raise_for_status``.

    The transport itself never raises this: callers opt in when they prefer an
    exception over inspecting ``response.status_code``.
    """
    status_code: int
    message: str
    body: str | None = None

    def __str__(self) -> str:
        parts = [f"APIStatusError(status_code={self.status_code}"]
        parts.append(f", message={self.message!r}")
        if self.body:
            parts.append(f", body={len(self.body)} chars")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Dict form for structured logging."""
        return {
            "status_code": self.status_code,
            "message": self.message,
            "body": self.body,
        }

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600
