"""
Incremental decoder for ``data: <payload>\\n\\n`` event streams.

Only the fixed ``data: `` prefix is understood: no event names, ids, retry
directives or comments. Any other leading bytes at a frame boundary abort the
decode session.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Iterator

import httpx

from fetch_sse._errors import DecodeSessionPending, SSEProtocolError

FRAME_PREFIX = b"data: "
FRAME_TERMINATOR = b"\n\n"
# 'data: \n\n' es el frame más corto posible.
MIN_FRAME_SIZE = len(FRAME_PREFIX) + len(FRAME_TERMINATOR)


def extract_frame(buffer: bytes | bytearray) -> tuple[str, int] | None:
    """
    Extract the first complete frame from the start of ``buffer``.

    Args:
        buffer: Bytes received and not yet consumed. Not modified.

    Returns:
        ``(payload, end)`` where ``end`` is one past the second terminator byte,
        or None when the buffer does not hold a complete frame yet.

    Raises:
        SSEProtocolError: If the buffer does not start with ``data: ``.
        UnicodeDecodeError: If the payload is not valid UTF-8.
    """
    if len(buffer) < MIN_FRAME_SIZE:
        return None

    if buffer[: len(FRAME_PREFIX)] != FRAME_PREFIX:
        raise SSEProtocolError(f"Frame does not start with 'data: ': {bytes(buffer[:16])!r}")

    idx = buffer.find(FRAME_TERMINATOR)
    if idx < 0:
        return None

    payload = bytes(buffer[len(FRAME_PREFIX) : idx]).decode("utf-8")
    return payload, idx + len(FRAME_TERMINATOR)


def _has_readable_body(resp: httpx.Response) -> bool:
    if not resp.is_stream_consumed:
        return True
    # Un body ya leído sigue disponible desde la caché de httpx.
    try:
        resp.content
    except httpx.ResponseNotRead:
        return False
    return True


class _DecodeState:
    """Accumulator and terminal outcome shared by the sync and async sessions."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._outcome: bool | None = None

    @property
    def outcome(self) -> bool:
        """True when the stream ended cleanly, False on any failure or early close."""
        if self._outcome is None:
            raise DecodeSessionPending("Decode session has not finished yet")
        return self._outcome

    @property
    def done(self) -> bool:
        return self._outcome is not None

    def _feed(self, chunk: bytes) -> Iterator[str]:
        self._buffer += chunk
        if len(self._buffer) < MIN_FRAME_SIZE:
            return
        yield from self._drain()

    def _drain(self) -> Iterator[str]:
        frame = extract_frame(self._buffer)
        while frame is not None:
            payload, end = frame
            del self._buffer[:end]
            yield payload
            frame = extract_frame(self._buffer)

    def _finish(self) -> Iterator[str]:
        yield from self._drain()
        if self._buffer:
            raise SSEProtocolError(f"Stream ended in the middle of a frame ({len(self._buffer)} bytes left)")


class FrameDecoder(_DecodeState):
    """
    One decode session over one byte stream.

    Iterate it to get payload strings; after iteration ends, ``outcome`` tells
    whether the stream was complete and well-formed. Errors never escape the
    iteration: they are logged and turn the outcome into False.

    Usage:
        with transport.stream_events("https://example.com/events") as events:
            for message in events:
                ...
        if not events.outcome:
            ...
    """

    def __init__(
        self,
        chunks: Iterable[bytes] | None,
        *,
        release: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__()
        self._chunks = chunks
        self._release = release
        self._frames = self._run()
        if chunks is None:
            self._outcome = False
            # Sin stream no hay sesión: se libera ya, sin esperar a que alguien itere.
            self._release_once()

    @classmethod
    def from_response(
        cls,
        resp: httpx.Response,
        *,
        on_release: Callable[[], Any] | None = None,
    ) -> FrameDecoder:
        """
        Decode the body of a streaming httpx response, closing it when the session ends.

        A non-2xx or unreadable response is closed before returning.
        """

        def release() -> None:
            try:
                resp.close()
            finally:
                if on_release is not None:
                    on_release()

        if not resp.is_success or not _has_readable_body(resp):
            return cls(None, release=release)
        return cls(resp.iter_bytes(), release=release)

    def __iter__(self) -> FrameDecoder:
        return self

    def __next__(self) -> str:
        return next(self._frames)

    def __enter__(self) -> FrameDecoder:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Stop the session early and release the stream."""
        self._frames.close()
        if self._outcome is None:
            self._outcome = False
        self._release_once()

    def _release_once(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def _run(self) -> Iterator[str]:
        try:
            if self._chunks is None:
                return

            try:
                for chunk in self._chunks:
                    if not chunk:
                        continue
                    yield from self._feed(chunk)
                yield from self._finish()
            except Exception as e:
                logging.warning("SSE decode failed: %r", e)
                self._outcome = False
                return

            self._outcome = True
        finally:
            self._release_once()


class AsyncFrameDecoder(_DecodeState):
    """
    Async twin of FrameDecoder for ``httpx.AsyncClient`` streams.

    Usage:
        async with await transport.astream_events("https://example.com/events") as events:
            async for message in events:
                ...
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes] | None,
        *,
        release: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        super().__init__()
        self._chunks = chunks
        self._release = release
        self._frames = self._run()
        if chunks is None:
            self._outcome = False

    @classmethod
    async def from_response(
        cls,
        resp: httpx.Response,
        *,
        on_release: Callable[[], Awaitable[Any]] | None = None,
    ) -> AsyncFrameDecoder:
        """
        Decode the body of a streaming httpx response, closing it when the session ends.

        A non-2xx or unreadable response is closed before returning.
        """

        async def release() -> None:
            try:
                await resp.aclose()
            finally:
                if on_release is not None:
                    await on_release()

        if not resp.is_success or not _has_readable_body(resp):
            await release()
            return cls(None)
        return cls(resp.aiter_bytes(), release=release)

    def __aiter__(self) -> AsyncFrameDecoder:
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def __aenter__(self) -> AsyncFrameDecoder:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._frames.aclose()
        if self._outcome is None:
            self._outcome = False
        await self._release_once()

    async def _release_once(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            await release()

    async def _run(self) -> AsyncIterator[str]:
        try:
            if self._chunks is None:
                return

            try:
                async for chunk in self._chunks:
                    if not chunk:
                        continue
                    for payload in self._feed(chunk):
                        yield payload
                for payload in self._finish():
                    yield payload
            except Exception as e:
                logging.warning("SSE decode failed: %r", e)
                self._outcome = False
                return

            self._outcome = True
        finally:
            await self._release_once()
