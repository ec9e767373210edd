"""
Request body encoding: picks how a body is sent and which Content-Type it implies.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

TEXT_PLAIN = "text/plain"
APPLICATION_JSON = "application/json"


@dataclass(slots=True)
class FormData:
    """
    Multipart container. ``fields`` are plain form fields, ``files`` follow the
    httpx ``files=`` shapes (``{"name": fileobj}`` or ``{"name": (filename, fileobj, content_type)}``).
    """

    fields: dict[str, Any] = field(default_factory=dict)
    files: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EncodedBody:
    content: bytes | None = None
    files: list[tuple[str, Any]] | None = None
    content_type: str | None = None

    def request_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``httpx.Client.build_request``."""
        kwargs: dict[str, Any] = {}
        if self.content is not None:
            kwargs["content"] = self.content
        if self.files:
            kwargs["files"] = self.files
        return kwargs


def _multipart_parts(form: FormData) -> list[tuple[str, Any]]:
    # Los campos van como partes sin filename para que httpx siempre arme multipart,
    # incluso cuando no hay archivos.
    parts: list[tuple[str, Any]] = [(name, (None, str(value))) for name, value in form.fields.items()]
    parts.extend(form.files.items())
    return parts


def encode_body(body: Any) -> EncodedBody:
    """
    Infer the wire form of a request body from its Python shape.

    - None: no body, no Content-Type.
    - bytes-like: sent raw, Content-Type left to the caller.
    - FormData: multipart, httpx writes the Content-Type with its boundary.
    - str, int, float: plain text.
    - pydantic models and any other value: JSON.
    """
    if body is None:
        return EncodedBody()

    if isinstance(body, (bytes, bytearray, memoryview)):
        return EncodedBody(content=bytes(body))

    if isinstance(body, FormData):
        return EncodedBody(files=_multipart_parts(body))

    if isinstance(body, str):
        return EncodedBody(content=body.encode("utf-8"), content_type=TEXT_PLAIN)

    # bool es subclase de int; se serializa como JSON (true/false), no como texto.
    if isinstance(body, (int, float)) and not isinstance(body, bool):
        return EncodedBody(content=str(body).encode("utf-8"), content_type=TEXT_PLAIN)

    if isinstance(body, BaseModel):
        payload = body.model_dump_json(by_alias=True, exclude_none=True)
        return EncodedBody(content=payload.encode("utf-8"), content_type=APPLICATION_JSON)

    return EncodedBody(content=json.dumps(body).encode("utf-8"), content_type=APPLICATION_JSON)
