"""Shared fixtures for the scraper unit tests."""
import asyncio
from typing import Callable, Iterable, List, Optional

import httpx
import pytest

from taskscraper.fetcher.transport import HTTPXTransport
from taskscraper.scope import FetchScope


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered chunk by chunk, with an optional hook between chunks."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        between: Optional[Callable[[int], None]] = None,
        fail_after: Optional[int] = None,
        delay: float = 0.0,
    ):
        self.chunks = list(chunks)
        self.between = between
        self.fail_after = fail_after
        self.delay = delay
        self.closed = False

    async def __aiter__(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise httpx.ReadError("connection reset")
            if index and self.between is not None:
                self.between(index)
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class RecordingTransport:
    """Transport that answers from a handler and remembers what it sent."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []
        self.responses: List[httpx.Response] = []

    async def send(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handler(request)
        response.request = request
        self.responses.append(response)
        return response


@pytest.fixture
def scope() -> FetchScope:
    return FetchScope()


@pytest.fixture
def chunked_stream():
    """The ChunkedStream class, for building streaming response bodies."""
    return ChunkedStream


@pytest.fixture
def recording_transport():
    """Factory for transports that record requests and returned responses."""
    return RecordingTransport


@pytest.fixture
def mock_transport():
    """Factory for an HTTPX transport backed by ``httpx.MockTransport``."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> HTTPXTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        return HTTPXTransport(client, owns_client=True)
    return factory
