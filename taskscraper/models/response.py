"""
Response models produced by the fetch engine.

ResponseSnapshot is what a response callback gets to see: metadata only, with
its own copy of the headers and no body or request attached. FetchResult is
the in-memory outcome of a completed request, exclusively owned by the decoder
stage that asked for it.
"""
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field


class ResponseSnapshot(BaseModel):
    """Defensive, body-less copy of a response's metadata."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status_code: int
    reason_phrase: str = ""
    http_version: str = ""
    url: str = ""
    headers: httpx.Headers = Field(default_factory=httpx.Headers)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ResponseSnapshot":
        """Copy status and headers from ``response`` without touching its body."""
        return cls(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            http_version=response.http_version,
            url=effective_url(response) or "",
            headers=response.headers.copy(),
        )


class FetchResult(BaseModel):
    """
    Outcome of one completed request.

    ``body`` never exceeds the configured response ceiling; when ``truncated``
    is set it is exactly that ceiling long.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status_code: int
    headers: httpx.Headers = Field(default_factory=httpx.Headers)
    url: str  # effective URL after redirects
    request_url: str
    body: bytes = b""
    truncated: bool = False

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def base_url(self) -> str:
        """URL used to resolve relative links: effective URL, else the requested one."""
        return self.url or self.request_url


def effective_url(response: httpx.Response) -> Optional[str]:
    """Return the final URL of ``response``, or None if it has no request attached."""
    try:
        return str(response.url)
    except RuntimeError:
        return None
