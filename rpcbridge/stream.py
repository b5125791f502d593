"""Size-limited reading of request bodies."""

from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator

from .http import BodySource

_LOGGER = logging.getLogger(__name__)

MAX_BODY_SIZE = 10_485_760


class BodyTooLarge(Exception):
    """The body grew past the configured limit."""

    def __init__(self, limit: int) -> None:
        super().__init__("Size limit exceeded")
        self.limit = limit


class CappedReader:
    """Read a body source while counting bytes against *max_size*.

    The limit is checked after every chunk, so an oversized stream fails as
    soon as it crosses the limit instead of after the producer finishes.
    """

    def __init__(self, source: BodySource, max_size: int = MAX_BODY_SIZE) -> None:
        self._source = source
        self.max_size = max_size
        self.bytes_read = 0
        self._consumed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Body has already been consumed")
        self._consumed = True
        if isinstance(self._source, (bytes, bytearray, memoryview)):
            chunk = bytes(self._source)
            self._count(chunk)
            if chunk:
                yield chunk
            return
        iterator = self._source.__aiter__()
        try:
            async for chunk in iterator:
                self._count(chunk)
                yield chunk
        except BodyTooLarge:
            await _close(iterator)
            raise

    def _count(self, chunk: bytes) -> None:
        self.bytes_read += len(chunk)
        if self.bytes_read > self.max_size:
            _LOGGER.debug(
                "Body exceeded %d bytes after reading %d", self.max_size, self.bytes_read
            )
            raise BodyTooLarge(self.max_size)

    async def read(self) -> bytes:
        """Return the whole body, raising :class:`BodyTooLarge` past the limit."""
        parts = [chunk async for chunk in self]
        return b"".join(parts)


async def _close(iterator: AsyncIterable[bytes]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if callable(aclose):
        await aclose()


__all__ = ["BodyTooLarge", "CappedReader", "MAX_BODY_SIZE"]
