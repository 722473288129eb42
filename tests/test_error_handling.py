"""Test backend errors, retries and idempotent submissions."""

import json

import httpx
import pytest

from chatengine.services.backend import BackendClient, BackendError
from chatengine.services.retry import RetryConfig
from chatengine.services.submission import (
    BackendSubmitter,
    SubmissionKind,
    SubmissionLedger,
    SubmissionStatus,
)


def backend_for(handler) -> BackendClient:
    return BackendClient(
        base_url="https://backend.example.com/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        api_key="k3y",
    )


class TestBackendError:
    """Test BackendError exception."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = BackendError("Something went wrong")

        assert str(error) == "Something went wrong"
        assert error.status_code is None
        assert error.is_retryable is False

    def test_error_with_all_attributes(self):
        """Test error with status code and retry flag."""
        error = BackendError("Busy", status_code=503, is_retryable=True)

        assert error.status_code == 503
        assert error.is_retryable is True


class TestBackendClient:
    """Test the backend HTTP client."""

    async def test_post_sends_headers(self):
        """Test the URL, bearer token and idempotency key."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "ext-1"})

        body = await backend_for(handler).post("/orders", {"total": 10}, idempotency_key="abc")

        [request] = requests
        assert body == {"id": "ext-1"}
        assert str(request.url) == "https://backend.example.com/orders"
        assert request.headers["Authorization"] == "Bearer k3y"
        assert request.headers["Idempotency-Key"] == "abc"
        assert json.loads(request.content) == {"total": 10}

    async def test_get_with_params(self):
        """Test query parameters on GET."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=[{"id": 1}])

        body = await backend_for(handler).get("orders", params={"user": "u1"})

        assert seen == ["https://backend.example.com/orders?user=u1"]
        assert body == {"data": [{"id": 1}]}

    async def test_empty_body(self):
        """Test a 204 response yields an empty dict."""
        client = backend_for(lambda request: httpx.Response(204))

        assert await client.post("orders", {}) == {}

    @pytest.mark.parametrize(
        "status, retryable", [(400, False), (409, False), (429, True), (500, True), (503, True)]
    )
    async def test_http_errors(self, status, retryable):
        """Test error statuses and their retry flag."""
        client = backend_for(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(BackendError) as exc_info:
            await client.post("orders", {})

        assert exc_info.value.status_code == status
        assert exc_info.value.is_retryable is retryable

    async def test_connection_error(self):
        """Test transport failures are retryable."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError) as exc_info:
            await backend_for(handler).post("orders", {})

        assert exc_info.value.is_retryable is True
        assert exc_info.value.status_code is None

    async def test_invalid_json(self):
        """Test a non-JSON success body is an error."""
        client = backend_for(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(BackendError, match="Invalid JSON"):
            await client.get("orders")


class TestBackendSubmitter:
    """Test retries and idempotency of submissions."""

    @pytest.fixture
    def retry_config(self):
        """Fast retries for tests."""
        return RetryConfig(max_retries=3, base_delay_ms=1, jitter_factor=0.0)

    async def test_local_only_without_backend(self):
        """Test submissions are confirmed locally with no backend."""
        submitter = BackendSubmitter(SubmissionLedger())

        record = await submitter.submit(SubmissionKind.ORDER, "orders", {"total": 10})

        assert record.status == SubmissionStatus.CONFIRMED
        assert record.attempts == 0
        assert submitter.ledger.get(record.id) == record

    async def test_success_on_first_attempt(self, retry_config):
        """Test a single request on success."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": 77})

        submitter = BackendSubmitter(SubmissionLedger(), backend_for(handler), retry_config)
        record = await submitter.submit(SubmissionKind.ORDER, "orders", {"total": 10})

        assert record.status == SubmissionStatus.CONFIRMED
        assert record.external_id == "77"
        assert record.attempts == 1
        assert len(requests) == 1
        assert json.loads(requests[0].content)["reference"] == record.id

    async def test_retries_reuse_idempotency_key(self, retry_config):
        """Test every attempt carries the same key and updates one record."""
        keys: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            keys.append(request.headers["Idempotency-Key"])
            if len(keys) < 3:
                return httpx.Response(503)
            return httpx.Response(201, json={"id": "ext-9"})

        ledger = SubmissionLedger()
        submitter = BackendSubmitter(ledger, backend_for(handler), retry_config)
        record = await submitter.submit(SubmissionKind.APPOINTMENT, "appointments", {"d": 1})

        assert record.status == SubmissionStatus.CONFIRMED
        assert record.attempts == 3
        assert len(set(keys)) == 1
        assert keys[0] == record.id
        assert len(ledger.records()) == 1

    async def test_local_only_after_exhaustion(self, retry_config):
        """Test the record is kept locally when every attempt fails."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        submitter = BackendSubmitter(SubmissionLedger(), backend_for(handler), retry_config)
        record = await submitter.submit(SubmissionKind.ORDER, "orders", {"total": 10})

        assert record.status == SubmissionStatus.LOCAL_ONLY
        assert record.attempts == 4
        assert calls == 4
        assert "HTTP 500" in record.last_error

    async def test_no_retry_on_client_error(self, retry_config):
        """Test 4xx failures are not retried."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(422)

        submitter = BackendSubmitter(SubmissionLedger(), backend_for(handler), retry_config)
        record = await submitter.submit(SubmissionKind.ORDER, "orders", {"total": 10})

        assert record.status == SubmissionStatus.LOCAL_ONLY
        assert calls == 1

    async def test_records_by_kind(self):
        """Test ledger filtering."""
        submitter = BackendSubmitter(SubmissionLedger())
        await submitter.submit(SubmissionKind.ORDER, "orders", {})
        await submitter.submit(SubmissionKind.APPOINTMENT, "appointments", {})

        assert len(submitter.ledger.records(SubmissionKind.ORDER)) == 1
        assert len(submitter.ledger.records()) == 2
