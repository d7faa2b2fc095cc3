"""
Redaction helpers for logging URLs and headers without leaking credentials.
"""
from typing import Mapping, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

REDACTED = "xxxxx"

SENSITIVE_EXACT_KEYS = frozenset({
    "token", "auth", "key", "secret", "pass", "credential", "signature", "password", "passwd",
    "access_token", "api_key", "client_secret", "refresh_token", "id_token",
    "access_key", "secret_key", "private_key", "public_key",
    "client_id", "client_key", "app_key", "auth_key",
})

SENSITIVE_SUFFIXES = ("_token", "_secret", "_cred", "_sig", "_password", "_passwd")

SENSITIVE_HEADERS = ("Authorization", "Proxy-Authorization", "Cookie", "Set-Cookie")


def is_sensitive_key(key: str) -> bool:
    """Check whether a query parameter name looks like a credential."""
    lowered = key.lower()
    return lowered in SENSITIVE_EXACT_KEYS or lowered.endswith(SENSITIVE_SUFFIXES)


def redact_url(url: Union[str, httpx.URL, None]) -> str:
    """
    Mask userinfo and credential-like query values in ``url``.

    Args:
        url: URL to redact

    Returns:
        str: URL safe to log
    """
    if url is None:
        return ""
    raw = str(url)
    try:
        parts = urlsplit(raw)
    except ValueError:
        # Unparseable; drop anything that looks like userinfo
        head, sep, tail = raw.rpartition("@")
        return f"{REDACTED}@{tail}" if sep else raw

    netloc = parts.netloc
    if "@" in netloc:
        userinfo, _, host = netloc.rpartition("@")
        if ":" in userinfo:
            username = userinfo.split(":", 1)[0]
            netloc = f"{username}:{REDACTED}@{host}"
        else:
            netloc = f"{REDACTED}@{host}"

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        query = urlencode([(k, REDACTED if is_sensitive_key(k) else v) for k, v in pairs])

    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def redact_headers(headers: Optional[Mapping[str, str]]) -> Optional[httpx.Headers]:
    """Return a copy of ``headers`` with auth and cookie values masked."""
    if headers is None:
        return None
    masked = httpx.Headers(headers)
    for name in SENSITIVE_HEADERS:
        if name in masked:
            masked[name] = "***"
    return masked
