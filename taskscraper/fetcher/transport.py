"""
Transport collaborator for the task scraper.

The scraper never manages connections itself. It hands a fully-formed
``httpx.Request`` to a :class:`Transport` and receives a streaming
``httpx.Response`` that it must close. :class:`HTTPXTransport` adapts an
``httpx.AsyncClient``; tests plug in ``httpx.MockTransport`` the same way.
"""
from typing import Optional, Protocol, runtime_checkable

import httpx
import structlog

from taskscraper.config import ScraperSettings

# Set up structured logger
logger = structlog.get_logger()


@runtime_checkable
class Transport(Protocol):
    """Send one HTTP request, get one HTTP response."""

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send ``request`` and return the response with an unread body.

        Raises:
            Exception: Any transport-level failure
        """
        ...


class HTTPXTransport:
    """
    Transport backed by an ``httpx.AsyncClient``.

    Redirects are followed by the client; the final URL is available as
    ``response.url``.
    """

    def __init__(self, client: httpx.AsyncClient, owns_client: bool = False):
        """
        Initialize the transport.

        Args:
            client: HTTP client used to send requests
            owns_client: Whether ``aclose()`` should also close ``client``
        """
        self.client = client
        self._owns_client = owns_client

    async def __aenter__(self) -> "HTTPXTransport":
        """Enter the async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the async context manager."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()

    async def send(self, request: httpx.Request) -> httpx.Response:
        return await self.client.send(request, stream=True)


def build_transport(
    settings: Optional[ScraperSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Transport:
    """
    Build the default transport from settings.

    Args:
        settings: Scraper settings (loaded from the environment when omitted)
        client: Optional pre-configured client; one is created otherwise

    Returns:
        Transport: HTTPX transport wrapped with retries when enabled, then
            with User-Agent injection
    """
    # Imported here to avoid a cycle; both decorators build on this module.
    from taskscraper.fetcher.retry import RetryTransport
    from taskscraper.fetcher.user_agent import UserAgentTransport

    settings = settings or ScraperSettings()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            timeout=settings.request_timeout,
            follow_redirects=True,
        )

    transport: Transport = HTTPXTransport(client, owns_client=owns_client)
    if settings.retry_max_attempts > 0:
        transport = RetryTransport(
            transport,
            max_retries=settings.retry_max_attempts,
            min_delay=settings.retry_min_delay,
            max_delay=settings.retry_max_delay,
        )
    transport = UserAgentTransport(
        transport,
        user_agent=settings.user_agent,
        rotate=settings.rotate_user_agent,
    )

    logger.debug(
        "Transport built",
        timeout=settings.request_timeout,
        retries=settings.retry_max_attempts,
        rotate_user_agent=settings.rotate_user_agent,
    )
    return transport
