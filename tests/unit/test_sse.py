import logging
from unittest.mock import MagicMock, AsyncMock

import httpx
import pytest

from fetch_sse._errors import DecodeSessionPending, SSEProtocolError
from fetch_sse._sse import AsyncFrameDecoder, FrameDecoder, extract_frame


def decode_all(chunks):
    decoder = FrameDecoder(chunks)
    messages = list(decoder)
    return messages, decoder.outcome


async def adecode_all(chunks):
    async def source():
        for c in chunks:
            yield c

    decoder = AsyncFrameDecoder(source())
    messages = [m async for m in decoder]
    return messages, decoder.outcome


# extract_frame


def test_extract_frame_needs_at_least_eight_bytes():
    assert extract_frame(b"data: \n") is None
    assert extract_frame(b"") is None


def test_extract_frame_returns_payload_and_end():
    buf = b"data: hello\n\ndata: next"

    payload, end = extract_frame(buf)

    assert payload == "hello"
    assert end == len(b"data: hello\n\n")
    assert buf[end:] == b"data: next"


def test_extract_frame_without_terminator_waits_for_more():
    assert extract_frame(b"data: hello\n") is None


def test_extract_frame_rejects_other_prefix():
    with pytest.raises(SSEProtocolError):
        extract_frame(b"event: message\n\n")


def test_extract_frame_accepts_bytearray():
    payload, end = extract_frame(bytearray(b"data: x\n\n"))
    assert payload == "x"
    assert end == 9


# Payload boundary: the terminator is exactly the first "\n\n".


def test_empty_payload_frame():
    assert decode_all([b"data: \n\n"]) == ([""], True)


def test_single_newline_before_terminator_stays_in_payload():
    assert decode_all([b"data: a\nb\n\n"]) == (["a\nb"], True)


def test_extra_newline_after_terminator_is_leftover():
    # "data: a\n\n" se consume completo; el "\n" restante no es un frame.
    assert decode_all([b"data: a\n\n\n"]) == (["a"], False)


# FrameDecoder


def test_single_chunk_single_frame():
    assert decode_all([b"data: hello\n\n"]) == (["hello"], True)


def test_frame_split_across_chunks():
    assert decode_all([b"data: hel", b"lo\n\n"]) == (["hello"], True)


def test_terminator_split_across_chunks():
    assert decode_all([b"data: hello\n", b"\ndata: x\n\n"]) == (["hello", "x"], True)


def test_tiny_chunks_below_minimum_frame_size():
    chunks = [b"da", b"ta", b": ", b"x", b"\n", b"\n"]
    assert decode_all(chunks) == (["x"], True)


def test_two_frames_in_one_chunk():
    assert decode_all([b"data: a\n\ndata: b\n\n"]) == (["a", "b"], True)


def test_multibyte_utf8_split_across_chunks():
    raw = "data: héllo ✓\n\n".encode("utf-8")
    cut = raw.index("é".encode("utf-8")) + 1

    assert decode_all([raw[:cut], raw[cut:]]) == (["héllo ✓"], True)


def test_empty_chunks_are_ignored():
    assert decode_all([b"", b"data: a\n\n", b""]) == (["a"], True)


def test_empty_stream_succeeds():
    assert decode_all([]) == ([], True)


def test_incomplete_trailing_frame_fails_after_prior_messages():
    assert decode_all([b"data: a\n\ndata: b\n\ndata: unfinished"]) == (["a", "b"], False)


def test_short_trailing_garbage_fails():
    assert decode_all([b"data: a\n\n", b"da"]) == (["a"], False)


def test_wrong_prefix_yields_nothing():
    assert decode_all([b"event: ping\n\n"]) == ([], False)


def test_wrong_prefix_after_valid_frame_keeps_earlier_message():
    assert decode_all([b"data: a\n\n: comment\n\n"]) == (["a"], False)


def test_invalid_utf8_fails():
    assert decode_all([b"data: \xff\xfe\n\n"]) == ([], False)


def test_failure_is_logged(caplog):
    with caplog.at_level(logging.WARNING):
        decode_all([b"nope, not a frame"])

    assert "SSE decode failed" in caplog.text


def test_stream_error_becomes_failure(caplog):
    def source():
        yield b"data: a\n\n"
        raise httpx.ReadError("connection reset")

    with caplog.at_level(logging.WARNING):
        messages, ok = decode_all(source())

    assert messages == ["a"]
    assert ok is False
    assert "connection reset" in caplog.text


def test_outcome_before_end_raises():
    decoder = FrameDecoder([b"data: a\n\ndata: b\n\n"])

    assert next(decoder) == "a"
    assert decoder.done is False
    with pytest.raises(DecodeSessionPending):
        decoder.outcome


def test_chunks_are_pulled_lazily():
    pulled = []

    def source():
        for c in (b"data: a\n\n", b"data: b\n\n"):
            pulled.append(c)
            yield c

    decoder = FrameDecoder(source())

    assert pulled == []
    assert next(decoder) == "a"
    assert pulled == [b"data: a\n\n"]


def test_release_called_once_on_success():
    release = MagicMock()
    decoder = FrameDecoder([b"data: a\n\n"], release=release)

    assert list(decoder) == ["a"]
    decoder.close()

    release.assert_called_once_with()
    assert decoder.outcome is True


def test_release_called_on_failure():
    release = MagicMock()
    decoder = FrameDecoder([b"garbage!"], release=release)

    assert list(decoder) == []

    release.assert_called_once_with()
    assert decoder.outcome is False


def test_close_mid_stream_releases_and_fails():
    release = MagicMock()
    decoder = FrameDecoder([b"data: a\n\ndata: b\n\n"], release=release)

    assert next(decoder) == "a"
    decoder.close()

    release.assert_called_once_with()
    assert decoder.outcome is False
    with pytest.raises(StopIteration):
        next(decoder)


def test_close_before_first_pull_releases():
    release = MagicMock()
    decoder = FrameDecoder([b"data: a\n\n"], release=release)

    decoder.close()

    release.assert_called_once_with()
    assert decoder.outcome is False


def test_break_inside_with_block_releases():
    release = MagicMock()

    with FrameDecoder([b"data: a\n\ndata: b\n\n"], release=release) as decoder:
        for message in decoder:
            break

    assert message == "a"
    release.assert_called_once_with()
    assert decoder.outcome is False


def test_no_stream_fails_immediately():
    release = MagicMock()
    decoder = FrameDecoder(None, release=release)

    assert decoder.outcome is False
    assert list(decoder) == []
    release.assert_called_once_with()


def test_sessions_do_not_share_state():
    first = FrameDecoder([b"data: par"])
    second = FrameDecoder([b"data: b\n\n"])

    assert list(first) == []
    assert list(second) == ["b"]
    assert first.outcome is False
    assert second.outcome is True


# FrameDecoder.from_response


def test_from_response_decodes_body_and_closes():
    resp = httpx.Response(200, content=[b"data: hel", b"lo\n\n"])

    decoder = FrameDecoder.from_response(resp)

    assert list(decoder) == ["hello"]
    assert decoder.outcome is True
    assert resp.is_closed


def test_from_response_non_ok_status_never_reads_body():
    read = []

    def body():
        read.append(True)
        yield b"data: a\n\n"

    resp = httpx.Response(503, content=body())

    decoder = FrameDecoder.from_response(resp)

    assert decoder.outcome is False
    assert list(decoder) == []
    assert read == []
    assert resp.is_closed


def test_from_response_non_ok_status_closes_without_iterating():
    resp = httpx.Response(503, content=iter([b"x"]))
    on_release = MagicMock()

    decoder = FrameDecoder.from_response(resp, on_release=on_release)

    assert decoder.outcome is False
    assert resp.is_closed
    on_release.assert_called_once_with()


def test_from_response_with_consumed_stream_fails():
    resp = httpx.Response(200, content=iter([b"data: a\n\n"]))
    for _ in resp.iter_raw():
        pass

    decoder = FrameDecoder.from_response(resp)

    assert list(decoder) == []
    assert decoder.outcome is False


def test_from_response_with_cached_body_decodes():
    resp = httpx.Response(200, content=b"data: cached\n\n")

    decoder = FrameDecoder.from_response(resp)

    assert list(decoder) == ["cached"]
    assert decoder.outcome is True


def test_from_response_runs_on_release_after_close():
    resp = httpx.Response(200, content=b"data: a\n\n")
    on_release = MagicMock()

    decoder = FrameDecoder.from_response(resp, on_release=on_release)
    list(decoder)

    on_release.assert_called_once_with()


# AsyncFrameDecoder


@pytest.mark.asyncio
async def test_async_single_frame():
    assert await adecode_all([b"data: hello\n\n"]) == (["hello"], True)


@pytest.mark.asyncio
async def test_async_frame_split_across_chunks():
    assert await adecode_all([b"data: hel", b"lo\n\n"]) == (["hello"], True)


@pytest.mark.asyncio
async def test_async_two_frames_in_one_chunk():
    assert await adecode_all([b"data: a\n\ndata: b\n\n"]) == (["a", "b"], True)


@pytest.mark.asyncio
async def test_async_incomplete_trailing_frame():
    assert await adecode_all([b"data: a\n\n", b"data: b"]) == (["a"], False)


@pytest.mark.asyncio
async def test_async_wrong_prefix():
    assert await adecode_all([b"retry: 1000\n\n"]) == ([], False)


@pytest.mark.asyncio
async def test_async_stream_error_becomes_failure(caplog):
    async def source():
        yield b"data: a\n\n"
        raise httpx.ReadError("boom")

    decoder = AsyncFrameDecoder(source())
    with caplog.at_level(logging.WARNING):
        messages = [m async for m in decoder]

    assert messages == ["a"]
    assert decoder.outcome is False
    assert "SSE decode failed" in caplog.text


@pytest.mark.asyncio
async def test_async_aclose_mid_stream_releases():
    async def source():
        yield b"data: a\n\ndata: b\n\n"

    release = AsyncMock()
    decoder = AsyncFrameDecoder(source(), release=release)

    assert await decoder.__anext__() == "a"
    await decoder.aclose()

    release.assert_awaited_once_with()
    assert decoder.outcome is False


@pytest.mark.asyncio
async def test_async_context_manager_releases_on_success():
    async def source():
        yield b"data: a\n\n"

    release = AsyncMock()
    async with AsyncFrameDecoder(source(), release=release) as decoder:
        messages = [m async for m in decoder]

    assert messages == ["a"]
    assert decoder.outcome is True
    release.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_async_from_response_non_ok_status():
    read = []

    async def body():
        read.append(True)
        yield b"data: a\n\n"

    resp = httpx.Response(401, content=body())

    decoder = await AsyncFrameDecoder.from_response(resp)
    messages = [m async for m in decoder]

    assert messages == []
    assert decoder.outcome is False
    assert read == []
    assert resp.is_closed


@pytest.mark.asyncio
async def test_async_from_response_non_ok_status_closes_without_iterating():
    async def body():
        yield b"x"

    resp = httpx.Response(500, content=body())
    on_release = AsyncMock()

    decoder = await AsyncFrameDecoder.from_response(resp, on_release=on_release)

    assert decoder.outcome is False
    assert resp.is_closed
    on_release.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_async_from_response_decodes_body():
    async def body():
        yield b"data: x\n\nda"
        yield b"ta: y\n\n"

    resp = httpx.Response(200, content=body())

    decoder = await AsyncFrameDecoder.from_response(resp)
    messages = [m async for m in decoder]

    assert messages == ["x", "y"]
    assert decoder.outcome is True
    assert resp.is_closed
