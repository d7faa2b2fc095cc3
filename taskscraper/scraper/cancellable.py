"""
Byte sources that observe a fetch scope between reads.

Every read first checks the scope and raises its error unchanged, so a long
body read fails fast at the next read boundary after cancellation. A single
read already in progress is not interrupted.
"""
from typing import AsyncIterable, AsyncIterator, BinaryIO, Iterable, Optional, Union

from taskscraper.scope import FetchScope

DEFAULT_CHUNK_SIZE = 64 * 1024

ByteChunks = Union[AsyncIterable[bytes], Iterable[bytes]]


class CancellableByteSource:
    """Async byte stream over chunked input that checks a scope before each read."""

    def __init__(self, scope: FetchScope, chunks: ByteChunks):
        self._scope = scope
        if hasattr(chunks, "__aiter__"):
            self._aiter: Optional[AsyncIterator[bytes]] = chunks.__aiter__()
            self._iter = None
        else:
            self._aiter = None
            self._iter = iter(chunks)
        self._pending = b""
        self._eof = False

    async def _next_chunk(self) -> bytes:
        self._scope.check()
        try:
            if self._aiter is not None:
                return await self._aiter.__anext__()
            return next(self._iter)
        except (StopAsyncIteration, StopIteration):
            self._eof = True
            return b""

    async def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes (everything when negative).

        Returns:
            bytes: Data read; empty at end of stream
        """
        if size == 0:
            return b""
        if size < 0:
            parts = [self._pending]
            self._pending = b""
            while not self._eof:
                parts.append(await self._next_chunk())
            return b"".join(parts)

        while not self._pending and not self._eof:
            self._pending = await self._next_chunk()
        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    async def read_limited(self, limit: int) -> bytes:
        """Read until end of stream or until ``limit`` bytes were produced."""
        parts = []
        remaining = limit
        while remaining > 0:
            data = await self.read(remaining)
            if not data:
                break
            parts.append(data)
            remaining -= len(data)
        return b"".join(parts)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            data = await self.read(DEFAULT_CHUNK_SIZE)
            if not data:
                return
            yield data


class CancellableReader:
    """Blocking file-like reader that checks a scope before each read."""

    def __init__(self, scope: FetchScope, stream: BinaryIO):
        self._scope = scope
        self._stream = stream

    def read(self, size: int = -1) -> bytes:
        self._scope.check()
        data = self._stream.read(size)
        if isinstance(data, str):
            # Text-mode file objects
            data = data.encode("utf-8")
        return data or b""

    def read_limited(self, limit: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
        """Drain the stream into memory, stopping after ``limit`` bytes."""
        parts = []
        remaining = limit
        while remaining > 0:
            data = self.read(min(chunk_size, remaining))
            if not data:
                break
            parts.append(data)
            remaining -= len(data)
        return b"".join(parts)


def iter_bytes(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterable[bytes]:
    """Split in-memory data into chunks so consumers observe read boundaries."""
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]
