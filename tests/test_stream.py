"""Tests for the size-capped body reader."""

import asyncio

import pytest

from rpcbridge import BodyTooLarge, CappedReader


def test_reads_bytes_source() -> None:
    reader = CappedReader(b"hello", max_size=5)
    assert asyncio.run(reader.read()) == b"hello"
    assert reader.bytes_read == 5


def test_bytes_source_over_limit() -> None:
    with pytest.raises(BodyTooLarge):
        asyncio.run(CappedReader(b"hello!", max_size=5).read())


def test_reads_chunked_source(chunked) -> None:
    source = chunked([b"ab", b"cd", b"e"])
    assert asyncio.run(CappedReader(source, max_size=10).read()) == b"abcde"
    assert source.pulled == 3


def test_stops_stream_as_soon_as_limit_is_crossed(chunked) -> None:
    source = chunked([b"aaaa", b"bbbb", b"cccc", b"dddd"])
    with pytest.raises(BodyTooLarge) as info:
        asyncio.run(CappedReader(source, max_size=6).read())
    assert info.value.limit == 6
    assert source.pulled == 2
    assert source.closed


def test_body_can_only_be_consumed_once() -> None:
    async def scenario() -> None:
        reader = CappedReader(b"x")
        await reader.read()
        with pytest.raises(RuntimeError):
            await reader.read()

    asyncio.run(scenario())
