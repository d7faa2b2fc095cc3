"""
Request body preparation.

A caller-supplied payload is classified into one of a small set of variants
and turned into size-checked, in-memory bytes before any network activity, so
the same body can be sent again by a retrying transport.
"""
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

import structlog
from pydantic_core import PydanticSerializationError, to_json

from taskscraper.scope import FetchScope, ScopeCancelled
from taskscraper.scraper.cancellable import CancellableByteSource, CancellableReader
from taskscraper.scraper.errors import (
    encode_json_body_failed,
    prepare_request_body_failed,
    request_body_too_large,
)

# Set up structured logger
logger = structlog.get_logger()


class BodyKind(str, Enum):
    """Payload variants understood by :func:`prepare_body`."""
    ABSENT = "absent"
    TEXT = "text"
    BYTES = "bytes"
    STREAM = "stream"
    SERIALIZABLE = "serializable"


@runtime_checkable
class ReplayableStream(Protocol):
    """
    Memory-backed stream whose remaining length is known without reading.

    ``io.BytesIO`` satisfies this; such streams are copied out directly instead
    of being drained through a cancellable reader.
    """

    def getbuffer(self) -> memoryview:
        ...

    def tell(self) -> int:
        ...


def classify_body(payload: Any) -> BodyKind:
    """Pick the variant for ``payload``."""
    if payload is None:
        return BodyKind.ABSENT
    if isinstance(payload, str):
        return BodyKind.TEXT
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return BodyKind.BYTES
    if hasattr(payload, "read") or hasattr(payload, "__aiter__"):
        return BodyKind.STREAM
    return BodyKind.SERIALIZABLE


def _check_size(data: bytes, limit: int) -> bytes:
    if len(data) > limit:
        raise request_body_too_large(limit)
    return data


async def _read_stream(scope: FetchScope, stream: Any, limit: int) -> bytes:
    if isinstance(stream, ReplayableStream):
        with stream.getbuffer() as view:
            start = stream.tell()
            if len(view) - start > limit:
                raise request_body_too_large(limit)
            return bytes(view[start:])

    try:
        if hasattr(stream, "__aiter__"):
            data = await CancellableByteSource(scope, stream).read_limited(limit + 1)
        else:
            data = CancellableReader(scope, stream).read_limited(limit + 1)
    except ScopeCancelled:
        raise
    except Exception as e:
        raise prepare_request_body_failed(e) from e

    return _check_size(data, limit)


def _serialize(payload: Any) -> bytes:
    try:
        return to_json(payload)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise encode_json_body_failed(e) from e


async def prepare_body(scope: FetchScope, payload: Any, max_size: int) -> Optional[bytes]:
    """
    Turn a request payload into bytes that can be sent (and re-sent).

    Args:
        scope: Fetch scope; checked before anything is read
        payload: None, str, bytes, a sync or async byte stream, or any value
            that serializes to JSON (pydantic models and dataclasses included)
        max_size: Maximum body size in bytes

    Returns:
        Optional[bytes]: Prepared body, or None when there is no body

    Raises:
        ScopeCancelled: If the scope is done, unchanged
        AppError: InvalidInput when oversized, ExecutionFailed when reading a
            stream fails, Internal when JSON encoding fails
    """
    scope.check()

    kind = classify_body(payload)
    if kind is BodyKind.ABSENT:
        return None
    if kind is BodyKind.TEXT:
        return _check_size(payload.encode("utf-8"), max_size)
    if kind is BodyKind.BYTES:
        return _check_size(bytes(payload), max_size)
    if kind is BodyKind.STREAM:
        data = await _read_stream(scope, payload, max_size)
    else:
        data = _check_size(_serialize(payload), max_size)

    logger.debug("Request body prepared", body_kind=kind.value, body_size=len(data))
    return data
