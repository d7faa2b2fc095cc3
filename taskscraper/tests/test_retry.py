from email.utils import format_datetime
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from structlog.testing import capture_logs

from taskscraper.fetcher.retry import RetryTransport, parse_retry_after


class SequenceTransport:
    """Returns the queued outcomes in order; exceptions are raised."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.responses = []

    async def send(self, request):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        response = httpx.Response(outcome[0], headers=outcome[1] if len(outcome) > 1 else None, request=request)
        self.responses.append(response)
        return response


def _request(method="GET"):
    return httpx.Request(method, "https://example.com/api")


def test_parse_retry_after_seconds():
    assert parse_retry_after("120") == 120.0
    assert parse_retry_after(" 0 ") == 0.0


def test_parse_retry_after_http_date():
    future = datetime.now(timezone.utc) + timedelta(seconds=90)
    delay = parse_retry_after(format_datetime(future, usegmt=True))
    assert 80 <= delay <= 90

    past = datetime.now(timezone.utc) - timedelta(hours=1)
    assert parse_retry_after(format_datetime(past, usegmt=True)) == 0.0


@pytest.mark.parametrize("value", [None, "", "soon", "-5"])
def test_parse_retry_after_rejects_garbage(value):
    assert parse_retry_after(value) is None


def test_retry_count_is_clamped():
    assert RetryTransport(SequenceTransport([]), max_retries=50).max_retries == 10
    assert RetryTransport(SequenceTransport([]), max_retries=-1).max_retries == 0


@pytest.mark.asyncio
async def test_retries_transient_status_then_succeeds():
    delegate = SequenceTransport([(503,), (502,), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=0)

    with capture_logs() as logs:
        response = await transport.send(_request())

    assert response.status_code == 200
    assert delegate.calls == 3
    assert all(r.is_closed for r in delegate.responses[:2])
    retries = [e for e in logs if e["event"] == "HTTP request failed, retrying"]
    assert [e["status_code"] for e in retries] == [503, 502]


@pytest.mark.asyncio
async def test_exhausted_retries_return_last_response():
    delegate = SequenceTransport([(503,), (503,), (503,)])
    transport = RetryTransport(delegate, max_retries=2, min_delay=0, max_delay=0)

    response = await transport.send(_request())

    assert response.status_code == 503
    assert delegate.calls == 3


@pytest.mark.asyncio
async def test_permanent_status_is_not_retried():
    delegate = SequenceTransport([(404,), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=0)

    response = await transport.send(_request())

    assert response.status_code == 404
    assert delegate.calls == 1


@pytest.mark.asyncio
async def test_non_idempotent_method_is_not_retried():
    delegate = SequenceTransport([(503,), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=0)

    response = await transport.send(_request("POST"))

    assert response.status_code == 503
    assert delegate.calls == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    delegate = SequenceTransport([httpx.ConnectError("refused"), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=0)

    response = await transport.send(_request())

    assert response.status_code == 200
    assert delegate.calls == 2


@pytest.mark.asyncio
async def test_exhausted_transport_errors_are_raised():
    delegate = SequenceTransport([httpx.ConnectError("refused")] * 2)
    transport = RetryTransport(delegate, max_retries=1, min_delay=0, max_delay=0)

    with pytest.raises(httpx.ConnectError):
        await transport.send(_request())
    assert delegate.calls == 2


@pytest.mark.asyncio
async def test_long_retry_after_stops_retrying():
    delegate = SequenceTransport([(429, {"Retry-After": "3600"}), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=1)

    response = await transport.send(_request())

    assert response.status_code == 429
    assert delegate.calls == 1


@pytest.mark.asyncio
async def test_retry_after_within_budget_is_honoured():
    delegate = SequenceTransport([(429, {"Retry-After": "0"}), (200,)])
    transport = RetryTransport(delegate, max_retries=3, min_delay=0, max_delay=1)

    response = await transport.send(_request())

    assert response.status_code == 200
    assert delegate.calls == 2
