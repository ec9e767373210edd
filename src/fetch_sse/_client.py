from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Literal, Mapping, Union

import httpx
from pydantic import BaseModel

from fetch_sse._body import encode_body
from fetch_sse._config import DEFAULT_REQUEST_TIMEOUT_MS, DEFAULT_SSE_TIMEOUT_MS, ClientConfig
from fetch_sse._errors import APIStatusError, RequestTimeoutError
from fetch_sse._sse import AsyncFrameDecoder, FrameDecoder

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]
QueryValue = Union[str, int, float, bool]
QueryParams = Union[Mapping[str, QueryValue], BaseModel]

_REDACTED_HEADERS = ("authorization", "proxy-authorization", "cookie")


def join_url_with_params(url: str, query_params: QueryParams | None) -> str:
    """
    Append ``query_params`` to ``url`` as a form-encoded query string.

    ``url`` must not carry a query string of its own. Key order is kept,
    booleans are written as ``true``/``false`` and an empty mapping returns
    ``url`` untouched.
    """
    if query_params is None:
        return url

    if isinstance(query_params, BaseModel):
        query_params = query_params.model_dump(by_alias=True, exclude_none=True)

    if not query_params:
        return url

    return f"{url}?{httpx.QueryParams(dict(query_params))}"


def _parse_error_message(status_code: int, body_text: str, content_type: str, reason: str) -> str:
    """
    Mensaje legible para una respuesta de error.

    Con JSON se busca ``error.message`` o ``message``; si no, se usa el body
    en texto plano y, como último recurso, el reason phrase.
    """
    fallback = body_text.strip() or reason or f"HTTP {status_code}"

    if "application/json" not in content_type.lower():
        return fallback

    try:
        data = json.loads(body_text) if body_text else {}
    except (json.JSONDecodeError, ValueError):
        return fallback

    if not isinstance(data, dict):
        return fallback

    error_obj = data.get("error")
    if isinstance(error_obj, dict):
        msg = error_obj.get("message")
    elif isinstance(error_obj, str):
        msg = error_obj
    else:
        msg = data.get("message")

    if isinstance(msg, str) and msg.strip():
        return msg.strip()
    return fallback


class HttpTransport:
    """
    Wrapper HTTPX ligero con:
    - requests one-shot con inferencia de Content-Type
    - streaming SSE decodificado con FrameDecoder / AsyncFrameDecoder
    - Debug logging opcional
    """

    def __init__(
        self,
        *,
        config: ClientConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ClientConfig.from_env_or_value()
        self._debug_http = self._config.debug_http

        def _redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
            out = dict(headers)
            for k in list(out):
                if k.lower() in _REDACTED_HEADERS:
                    out[k] = "***REDACTED***"
            return out

        def _log_request(request: httpx.Request) -> None:
            if not self._debug_http:
                return
            logging.warning("HTTPX REQUEST %s %s", request.method, request.url)
            logging.warning("HTTPX REQUEST headers=%s", _redact_headers(dict(request.headers)))
            # Multipart y bodies en streaming no están en memoria; no se loguean.
            if not isinstance(request.stream, httpx.ByteStream):
                return
            content = request.content
            if content:
                try:
                    logging.warning("HTTPX REQUEST body=%s", content.decode("utf-8"))
                except UnicodeDecodeError:
                    logging.warning("HTTPX REQUEST body=(binary) len=%s", len(content))

        # El body de la respuesta nunca se lee aquí: el decoder necesita el stream intacto.
        def _log_response(response: httpx.Response) -> None:
            if not self._debug_http:
                return
            req = response.request
            logging.warning("HTTPX RESPONSE %s %s -> %s", req.method, req.url, response.status_code)
            logging.warning("HTTPX RESPONSE headers=%s", _redact_headers(dict(response.headers)))

        async def _log_request_async(request: httpx.Request) -> None:
            _log_request(request)

        async def _log_response_async(response: httpx.Response) -> None:
            _log_response(response)

        EventHooksDict = dict[str, list[Callable[..., Any]]]

        hooks_sync: EventHooksDict = {"request": [_log_request], "response": [_log_response]}
        hooks_async: EventHooksDict = {"request": [_log_request_async], "response": [_log_response_async]}

        self._hooks_sync = hooks_sync
        self._hooks_async = hooks_async
        self._transport = transport
        self._async_transport = async_transport

        # Cada cliente se crea al primer uso; un transporte usado solo en sync nunca abre un AsyncClient.
        self._client: httpx.Client | None = None
        self._aclient: httpx.AsyncClient | None = None

    def _sync_client(self) -> httpx.Client:
        if self._client is None:
            # Sin timeout a nivel de cliente: cada request arma el suyo.
            self._client = httpx.Client(timeout=None, event_hooks=self._hooks_sync, transport=self._transport)
        return self._client

    def _async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(
                timeout=None, event_hooks=self._hooks_async, transport=self._async_transport
            )
        return self._aclient

    @property
    def config(self) -> ClientConfig:
        return self._config

    def close(self) -> None:
        """Close the sync client. Use aclose() when the async API was used too."""
        if self._client is not None:
            self._client.close()

    async def aclose(self) -> None:
        """Close every client this transport opened."""
        if self._aclient is not None:
            await self._aclient.aclose()
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @staticmethod
    def raise_for_status(resp: httpx.Response) -> None:
        """Verifica status y levanta APIStatusError. Opt-in: el transporte nunca lo llama."""
        if 200 <= resp.status_code < 300:
            return

        body_text: str | None = None
        try:
            body_text = resp.text
        except Exception:
            body_text = None

        message = _parse_error_message(
            status_code=resp.status_code,
            body_text=body_text or "",
            content_type=resp.headers.get("content-type", ""),
            reason=getattr(resp, "reason_phrase", "") or "",
        )
        raise APIStatusError(status_code=resp.status_code, message=message, body=body_text)

    def _build_request(
        self,
        client: httpx.Client | httpx.AsyncClient,
        url: str,
        method: HttpMethod,
        query_params: QueryParams | None,
        headers: Mapping[str, str] | None,
        body: Any,
        *,
        accept: str | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> httpx.Request:
        encoded = encode_body(body)
        merged = httpx.Headers(headers or {})
        if encoded.content_type is not None:
            merged["Content-Type"] = encoded.content_type
        if accept and "accept" not in merged:
            merged["Accept"] = accept

        return client.build_request(
            method,
            join_url_with_params(url, query_params),
            headers=merged,
            timeout=timeout,
            **encoded.request_kwargs(),
        )

    def request(
        self,
        url: str,
        method: HttpMethod = "GET",
        *,
        query_params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
        stream: bool = False,
        accept: str | None = None,
    ) -> httpx.Response:
        """
        Send one request and return the response whatever its status.

        With ``stream=True`` the body is left unread and the caller must close
        the response. Network errors propagate as httpx exceptions.

        Raises:
            RequestTimeoutError: If the response does not arrive within ``timeout_ms``.
        """
        if timeout_ms is None:
            timeout_ms = self._config.request_timeout_ms
        client = self._sync_client()
        req = self._build_request(
            client,
            url,
            method,
            query_params,
            headers,
            body,
            accept=accept,
            timeout=httpx.Timeout(timeout_ms / 1000),
        )

        try:
            resp = client.send(req, stream=True)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(url=str(req.url), timeout_ms=timeout_ms) from e

        if stream:
            # El timeout solo cubre la llegada de los headers. httpx pasa este mismo dict a
            # httpcore, que lo consulta en cada lectura del body.
            resp.request.extensions["timeout"]["read"] = None
            return resp

        try:
            resp.read()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(url=str(req.url), timeout_ms=timeout_ms) from e
        finally:
            resp.close()
        return resp

    async def arequest(
        self,
        url: str,
        method: HttpMethod = "GET",
        *,
        query_params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
        stream: bool = False,
        accept: str | None = None,
    ) -> httpx.Response:
        """Async version of request(). The timeout is disarmed as soon as the headers arrive."""
        if timeout_ms is None:
            timeout_ms = self._config.request_timeout_ms
        client = self._async_client()
        req = self._build_request(client, url, method, query_params, headers, body, accept=accept)

        try:
            resp = await asyncio.wait_for(client.send(req, stream=True), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(url=str(req.url), timeout_ms=timeout_ms) from e

        if not stream:
            try:
                await resp.aread()
            finally:
                await resp.aclose()
        return resp

    def stream_events(
        self,
        url: str,
        method: HttpMethod = "GET",
        *,
        query_params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
    ) -> FrameDecoder:
        """
        Retorna un FrameDecoder sobre el body de la respuesta.

        Uso:
            with transport.stream_events(url) as events:
                for message in events:
                    ...
            ok = events.outcome
        """
        resp = self.request(
            url,
            method,
            query_params=query_params,
            headers=headers,
            body=body,
            timeout_ms=self._config.sse_timeout_ms if timeout_ms is None else timeout_ms,
            stream=True,
            accept="text/event-stream",
        )
        return FrameDecoder.from_response(resp)

    async def astream_events(
        self,
        url: str,
        method: HttpMethod = "GET",
        *,
        query_params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
    ) -> AsyncFrameDecoder:
        """
        Retorna un AsyncFrameDecoder sobre el body de la respuesta.

        Usage:
            events = await transport.astream_events(url)
            async with events:
                async for message in events:
                    ...
        """
        resp = await self.arequest(
            url,
            method,
            query_params=query_params,
            headers=headers,
            body=body,
            timeout_ms=self._config.sse_timeout_ms if timeout_ms is None else timeout_ms,
            stream=True,
            accept="text/event-stream",
        )
        return await AsyncFrameDecoder.from_response(resp)


def make_http_request(
    url: str,
    method: HttpMethod = "GET",
    query_params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
) -> httpx.Response:
    """One request on a throwaway transport; the returned response is already read."""
    with HttpTransport() as transport:
        return transport.request(
            url, method, query_params=query_params, headers=headers, body=body, timeout_ms=timeout_ms
        )


async def amake_http_request(
    url: str,
    method: HttpMethod = "GET",
    query_params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
) -> httpx.Response:
    async with HttpTransport() as transport:
        return await transport.arequest(
            url, method, query_params=query_params, headers=headers, body=body, timeout_ms=timeout_ms
        )


def make_sse_request(
    url: str,
    method: HttpMethod = "GET",
    query_params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_SSE_TIMEOUT_MS,
) -> FrameDecoder:
    """
    Streaming request on a throwaway transport.

    The transport is closed together with the returned decoder, so the decoder
    must be exhausted or closed.
    """
    transport = HttpTransport()
    try:
        resp = transport.request(
            url,
            method,
            query_params=query_params,
            headers=headers,
            body=body,
            timeout_ms=timeout_ms,
            stream=True,
            accept="text/event-stream",
        )
    except BaseException:
        transport.close()
        raise
    return FrameDecoder.from_response(resp, on_release=transport.close)


async def amake_sse_request(
    url: str,
    method: HttpMethod = "GET",
    query_params: QueryParams | None = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    timeout_ms: int = DEFAULT_SSE_TIMEOUT_MS,
) -> AsyncFrameDecoder:
    transport = HttpTransport()
    try:
        resp = await transport.arequest(
            url,
            method,
            query_params=query_params,
            headers=headers,
            body=body,
            timeout_ms=timeout_ms,
            stream=True,
            accept="text/event-stream",
        )
    except BaseException:
        await transport.aclose()
        raise
    return await AsyncFrameDecoder.from_response(resp, on_release=transport.aclose)
