"""
User-Agent transport for the task scraper.

Requests built by the scraper carry only the caller's headers, so this
decorator fills in the User-Agent: either the configured one or a random
pick from a list of common desktop browsers.
"""
import random
from typing import Optional, Sequence

import httpx
import structlog

from taskscraper.fetcher.transport import Transport

# Set up structured logger
logger = structlog.get_logger()

COMMON_USER_AGENTS = (
    # Chrome 120 - Windows 10/11
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome 120 - macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome 120 - Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox 121 - Windows 10/11
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Firefox 121 - macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari 17.2 - macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
)


class UserAgentTransport:
    """
    Transport decorator that sets a User-Agent on requests lacking one.

    A User-Agent chosen by the caller is always kept. The caller's request
    is never modified; a copy carries the injected header. Place this
    decorator outside :class:`~taskscraper.fetcher.retry.RetryTransport` so
    that every retry of a request presents the same User-Agent.
    """

    def __init__(
        self,
        delegate: Transport,
        user_agent: Optional[str] = None,
        rotate: bool = False,
        user_agents: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the User-Agent transport.

        Args:
            delegate: Transport that sends the request
            user_agent: Fixed User-Agent used when not rotating
            rotate: Pick a random User-Agent for each request
            user_agents: Candidates for rotation (common browsers when empty)
        """
        self.delegate = delegate
        self.user_agent = user_agent
        self.rotate = rotate
        self.user_agents = tuple(user_agents) if user_agents else COMMON_USER_AGENTS

    async def aclose(self) -> None:
        """Close the delegate if it supports closing."""
        aclose = getattr(self.delegate, "aclose", None)
        if aclose is not None:
            await aclose()

    def choose(self) -> Optional[str]:
        """Return the User-Agent for the next request, if any."""
        if self.rotate:
            return random.choice(self.user_agents)
        return self.user_agent

    async def send(self, request: httpx.Request) -> httpx.Response:
        if "User-Agent" in request.headers:
            return await self.delegate.send(request)

        user_agent = self.choose()
        if not user_agent:
            return await self.delegate.send(request)

        logger.debug("Setting User-Agent", user_agent=user_agent, rotate=self.rotate)
        return await self.delegate.send(with_header(request, "User-Agent", user_agent))


def with_header(request: httpx.Request, name: str, value: str) -> httpx.Request:
    """Copy ``request`` with one header set, sharing its body stream."""
    headers = request.headers.copy()
    headers[name] = value
    copy = httpx.Request(
        request.method,
        request.url,
        headers=headers,
        stream=request.stream,
        extensions=request.extensions,
    )
    if isinstance(request.stream, httpx.ByteStream):
        # In-memory bodies stay readable through .content
        copy.read()
    return copy
