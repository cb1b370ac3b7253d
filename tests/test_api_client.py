"""Tests for the REST API client, using httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from bookkeeper.api import (
    ApiError,
    AuthenticationError,
    BookkeeperApiClient,
    NotFoundApiError,
    PollingTimeoutError,
    ProcessingFailedError,
    ServerError,
)
from bookkeeper.config import ApiSettings


BASE_URL = "http://api.test/api"


class Recorder:
    """Replays canned responses and keeps every request it saw."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def ok(data=None, **extra) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data, **extra})


def make_client(recorder: Recorder, **kwargs) -> BookkeeperApiClient:
    return BookkeeperApiClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(recorder),
        settings=ApiSettings(),
        **kwargs,
    )


class TestRequests:
    """Tests for headers, envelopes and bodies."""

    @pytest.mark.asyncio
    async def test_bearer_token_and_envelope(self):
        """Test the token is sent and the envelope parsed."""
        recorder = Recorder(ok([{"id": "t1"}], count=1))
        async with make_client(recorder, token_provider=lambda: "secret") as client:
            response = await client.transactions.get_all({"limit": 10})

        assert response.success
        assert response.count == 1
        assert response.data == [{"id": "t1"}]
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.url.path == "/api/transactions"
        assert request.url.params["limit"] == "10"

    @pytest.mark.asyncio
    async def test_async_token_provider(self):
        """Test a coroutine token provider is awaited."""
        async def token():
            return "async-token"

        recorder = Recorder(ok())
        async with make_client(recorder, token_provider=token) as client:
            await client.classification.get_rules()
        assert recorder.requests[0].headers["Authorization"] == "Bearer async-token"

    @pytest.mark.asyncio
    async def test_no_token_no_header(self):
        """Test requests go out unauthenticated without a token."""
        recorder = Recorder(ok())
        async with make_client(recorder, token_provider=lambda: None) as client:
            await client.csv.get_supported_banks()
        assert "Authorization" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_json_body_is_serialised(self):
        """Test decimals in request bodies are converted to JSON."""
        recorder = Recorder(ok({"id": "t1"}))
        async with make_client(recorder) as client:
            await client.transactions.create({"description": "Lumber", "amount": Decimal("-12.50")})

        body = json.loads(recorder.requests[0].content)
        assert body == {"description": "Lumber", "amount": "-12.50"}
        assert recorder.requests[0].method == "POST"

    @pytest.mark.asyncio
    async def test_csv_upload_is_multipart(self):
        """Test uploads send the file and form fields."""
        recorder = Recorder(ok({"uploadId": "u1"}))
        async with make_client(recorder) as client:
            await client.csv.upload("jan.csv", b"Date,Amount\n", bank_format="chase", company_id="c1")

        request = recorder.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        content = request.read()
        assert b'name="csv"; filename="jan.csv"' in content
        assert b'name="bankFormat"' in content
        assert b"chase" in content

    @pytest.mark.asyncio
    async def test_report_bytes(self):
        """Test report PDFs come back as raw bytes."""
        recorder = Recorder(httpx.Response(200, content=b"%PDF-1.4 fake"))
        async with make_client(recorder) as client:
            content = await client.reports.form_1099_pdf({"year": 2024})
        assert content == b"%PDF-1.4 fake"
        assert recorder.requests[0].url.path == "/api/reports/1099-summary-pdf"


class TestErrors:
    """Tests for status mapping and retries."""

    @pytest.mark.asyncio
    async def test_unauthorized_runs_hook_without_retry(self):
        """Test a 401 calls on_unauthorized and is not retried."""
        calls = []
        recorder = Recorder(httpx.Response(401, json={"success": False, "message": "Session expired"}))
        async with make_client(recorder, on_unauthorized=lambda: calls.append(True)) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.transactions.get_all()

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Session expired"
        assert calls == [True]
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_not_found_uses_error_message(self):
        """Test a 404 maps to NotFoundApiError with the payload's error text."""
        recorder = Recorder(httpx.Response(404, json={"success": False, "error": "Transaction not found"}))
        async with make_client(recorder) as client:
            with pytest.raises(NotFoundApiError, match="Transaction not found"):
                await client.transactions.get("missing")

    @pytest.mark.asyncio
    async def test_other_client_errors(self):
        """Test other 4xx statuses raise the base ApiError."""
        recorder = Recorder(httpx.Response(422, text="Unprocessable"))
        async with make_client(recorder) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.transactions.update("t1", {"amount": "x"})
        assert exc_info.value.status_code == 422
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried_once(self):
        """Test a 5xx followed by success returns the second reply."""
        recorder = Recorder(httpx.Response(502, text="Bad gateway"), ok({"status": "ok"}))
        async with make_client(recorder) as client:
            response = await client.classification.get_stats()
        assert response.data == {"status": "ok"}
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_persistent_server_error(self):
        """Test two 5xx replies raise ServerError."""
        recorder = Recorder(httpx.Response(503, json={"success": False, "message": "Down"}))
        async with make_client(recorder) as client:
            with pytest.raises(ServerError, match="Down"):
                await client.reports.history()
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        """Test a dropped connection is retried once."""
        recorder = Recorder(httpx.ConnectError("refused"), ok([]))
        async with make_client(recorder) as client:
            response = await client.pdf.get_uploads()
        assert response.data == []
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope(self):
        """Test success=false on a 200 raises ApiError."""
        recorder = Recorder(httpx.Response(200, json={"success": False, "message": "Nothing to confirm"}))
        async with make_client(recorder) as client:
            with pytest.raises(ApiError, match="Nothing to confirm"):
                await client.csv.confirm("u1")


class TestPolling:
    """Tests for PDF processing status polling."""

    @pytest.mark.asyncio
    async def test_polls_until_completed(self):
        """Test polling stops at completed and reports progress."""
        recorder = Recorder(
            ok({"status": "processing", "progress": 40}),
            ok({"status": "completed", "progress": 100}),
        )
        seen = []
        async with make_client(recorder) as client:
            status = await client.pdf.wait_for_status("p1", interval=0, on_progress=seen.append)

        assert status["status"] == "completed"
        assert [s["progress"] for s in seen] == [40, 100]
        assert recorder.requests[0].url.path == "/api/pdf/status/p1"

    @pytest.mark.asyncio
    async def test_failed_job(self):
        """Test a failed job raises ProcessingFailedError with its message."""
        recorder = Recorder(ok({"status": "failed", "error_message": "Unreadable PDF"}))
        async with make_client(recorder) as client:
            with pytest.raises(ProcessingFailedError, match="Unreadable PDF"):
                await client.pdf.wait_for_status("p1", interval=0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Test polling stops after max_attempts status checks."""
        recorder = Recorder(ok({"status": "processing"}))
        async with make_client(recorder) as client:
            with pytest.raises(PollingTimeoutError):
                await client.pdf.wait_for_status("p1", interval=0, max_attempts=3)
        assert len(recorder.requests) == 3
