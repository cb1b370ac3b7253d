"""
Bookkeeping REST API client.

Built on httpx.AsyncClient. Every JSON reply uses the
{success, data, count} envelope; report PDFs and downloads come back as
raw bytes.

DESIGN DECISION: Failures map onto a small exception hierarchy by HTTP
status so callers can react to the category rather than the code:

- 401 -> AuthenticationError (the optional on_unauthorized hook runs first)
- 403 -> ForbiddenError
- 404 -> NotFoundApiError
- 5xx -> ServerError
- other 4xx, or success=false -> ApiError

CRITICAL: A transport failure or a 5xx is retried exactly once. Client
errors and authorization failures are never retried.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
import structlog
from pydantic_core import to_jsonable_python
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from bookkeeper.config import ApiSettings, get_settings
from bookkeeper.models.api import ApiErrorDetail, ApiResponse


logger = structlog.get_logger(__name__)

RETRY_DELAY_SECONDS = 0.5

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


# =============================================================================
# ERRORS
# =============================================================================

class ApiError(Exception):
    """Base error for API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class AuthenticationError(ApiError):
    """401: the session is missing or expired."""
    pass


class ForbiddenError(ApiError):
    """403: the user may not touch this resource."""
    pass


class NotFoundApiError(ApiError):
    pass


class ServerError(ApiError):
    """5xx from the backend."""
    pass


class PollingTimeoutError(ApiError):
    """Processing did not finish within the allowed number of polls."""
    pass


class ProcessingFailedError(ApiError):
    """The backend reported the processing job as failed."""
    pass


_STATUS_ERRORS = {
    401: AuthenticationError,
    403: ForbiddenError,
    404: NotFoundApiError,
}


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message") or ApiErrorDetail.model_validate(error).code
        message = payload.get("message") or error
        if message:
            return str(message), payload
    return response.reason_phrase or f"HTTP {response.status_code}", payload


_retry_once = retry(
    stop=stop_after_attempt(2),
    wait=wait_fixed(RETRY_DELAY_SECONDS),
    retry=retry_if_exception_type((httpx.TransportError, ServerError)),
    reraise=True,
)


# =============================================================================
# ENDPOINT GROUPS
# =============================================================================

class _Endpoints:
    def __init__(self, client: "BookkeeperApiClient"):
        self._client = client


class PdfEndpoints(_Endpoints):
    """/pdf: statement uploads and processing."""

    async def upload(self, file_name: str, content: bytes) -> ApiResponse:
        files = {"pdf": (file_name, content, "application/pdf")}
        return await self._client.request_json("POST", "/pdf/upload", files=files)

    async def process(self, file_id: str, options: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("POST", f"/pdf/process/{file_id}", json=options or {})

    async def get_status(self, process_id: str) -> ApiResponse:
        return await self._client.request_json("GET", f"/pdf/status/{process_id}")

    async def get_uploads(self, params: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("GET", "/pdf/uploads", params=params)

    async def get_upload(self, upload_id: str) -> ApiResponse:
        return await self._client.request_json("GET", f"/pdf/uploads/{upload_id}")

    async def delete_upload(self, upload_id: str) -> ApiResponse:
        return await self._client.request_json("DELETE", f"/pdf/uploads/{upload_id}")

    async def rename_upload(self, upload_id: str, file_name: str) -> ApiResponse:
        return await self._client.request_json(
            "PUT", f"/pdf/uploads/{upload_id}/rename", json={"fileName": file_name}
        )

    async def update_upload_company(
        self,
        upload_id: str,
        company_id: Optional[str],
        company_name: Optional[str] = None,
    ) -> ApiResponse:
        return await self._client.request_json(
            "PUT",
            f"/pdf/uploads/{upload_id}/company",
            json={"companyId": company_id, "companyName": company_name},
        )

    async def wait_for_status(
        self,
        process_id: str,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        on_progress: Optional[Callable[[dict], Any]] = None,
    ) -> dict:
        """
        Poll the processing status until it is completed or failed.

        Returns the final status payload. Raises ProcessingFailedError when
        the job fails and PollingTimeoutError after max_attempts polls.
        """
        settings = self._client.settings
        interval = settings.poll_interval_seconds if interval is None else interval
        max_attempts = settings.max_poll_attempts if max_attempts is None else max_attempts

        for attempt in range(1, max_attempts + 1):
            response = await self.get_status(process_id)
            status = response.data if isinstance(response.data, dict) else {}
            if on_progress:
                await _maybe_await(on_progress(status))

            state = status.get("status")
            if state == "completed":
                logger.info("pdf_processing_completed", process_id=process_id, attempts=attempt)
                return status
            if state == "failed":
                message = status.get("error_message") or status.get("error") or "Processing failed"
                logger.warning("pdf_processing_failed", process_id=process_id, error=message)
                raise ProcessingFailedError(str(message), payload=status)

            if attempt < max_attempts:
                await asyncio.sleep(interval)

        logger.warning("pdf_processing_timeout", process_id=process_id, attempts=max_attempts)
        raise PollingTimeoutError(
            f"Processing did not finish after {max_attempts} status checks"
        )


class CsvEndpoints(_Endpoints):
    """/csv: bank CSV imports."""

    async def upload(
        self,
        file_name: str,
        content: bytes,
        bank_format: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> ApiResponse:
        data = {}
        if bank_format:
            data["bankFormat"] = bank_format
        if company_id:
            data["companyId"] = str(company_id)
        files = {"csv": (file_name, content, "text/csv")}
        return await self._client.request_json("POST", "/csv/upload", files=files, data=data)

    async def preview(
        self,
        upload_id: str,
        mapping: Optional[dict] = None,
        bank_format: Optional[str] = None,
    ) -> ApiResponse:
        body: dict[str, Any] = {}
        if mapping:
            body["mapping"] = mapping
        if bank_format:
            body["bankFormat"] = bank_format
        return await self._client.request_json("POST", f"/csv/preview/{upload_id}", json=body)

    async def confirm(
        self,
        upload_id: str,
        company_id: Optional[str] = None,
        skip_duplicates: bool = True,
    ) -> ApiResponse:
        return await self._client.request_json(
            "POST",
            f"/csv/confirm/{upload_id}",
            json={"companyId": company_id, "skipDuplicates": skip_duplicates},
        )

    async def get_imports(self, params: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("GET", "/csv/imports", params=params)

    async def get_import(self, import_id: str) -> ApiResponse:
        return await self._client.request_json("GET", f"/csv/imports/{import_id}")

    async def get_import_transactions(self, import_id: str, params: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("GET", f"/csv/imports/{import_id}/transactions", params=params)

    async def delete_import(self, import_id: str, delete_transactions: bool = False) -> ApiResponse:
        return await self._client.request_json(
            "DELETE",
            f"/csv/imports/{import_id}",
            json={"deleteTransactions": delete_transactions},
        )

    async def get_supported_banks(self) -> ApiResponse:
        return await self._client.request_json("GET", "/csv/banks")


class ReportEndpoints(_Endpoints):
    """/reports: generated PDFs and JSON report data."""

    async def summary_pdf(self, params: Optional[dict] = None) -> bytes:
        return await self._client.request_bytes("POST", "/reports/summary-pdf", json=params or {})

    async def tax_summary_pdf(self, params: Optional[dict] = None) -> bytes:
        return await self._client.request_bytes("POST", "/reports/tax-summary-pdf", json=params or {})

    async def category_breakdown_pdf(self, params: Optional[dict] = None) -> bytes:
        return await self._client.request_bytes("POST", "/reports/category-breakdown-pdf", json=params or {})

    async def form_1099_pdf(self, params: Optional[dict] = None) -> bytes:
        return await self._client.request_bytes("POST", "/reports/1099-summary-pdf", json=params or {})

    async def download(self, file_name: str) -> bytes:
        return await self._client.request_bytes("GET", f"/reports/download/{file_name}")

    async def profit_loss(self, params: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("GET", "/reports/profit-loss", params=params)

    async def history(self) -> ApiResponse:
        return await self._client.request_json("GET", "/reports/history")


class ClassificationEndpoints(_Endpoints):
    """/classification: rules and classification runs."""

    async def classify(self, transaction: dict) -> ApiResponse:
        return await self._client.request_json("POST", "/classification/classify", json={"transaction": transaction})

    async def get_rules(self) -> ApiResponse:
        return await self._client.request_json("GET", "/classification/rules")

    async def create_rule(self, rule: dict) -> ApiResponse:
        return await self._client.request_json("POST", "/classification/rules", json=rule)

    async def update_rule(self, rule_id: str, rule: dict) -> ApiResponse:
        return await self._client.request_json("PUT", f"/classification/rules/{rule_id}", json=rule)

    async def delete_rule(self, rule_id: str) -> ApiResponse:
        return await self._client.request_json("DELETE", f"/classification/rules/{rule_id}")

    async def get_stats(self) -> ApiResponse:
        return await self._client.request_json("GET", "/classification/stats")

    async def get_uncategorized(self) -> ApiResponse:
        return await self._client.request_json("GET", "/classification/uncategorized")

    async def bulk_reclassify(self, filters: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json(
            "POST", "/classification/bulk-reclassify", json={"filters": filters or {}}
        )


class TransactionEndpoints(_Endpoints):
    """/transactions: CRUD and bulk edit."""

    async def get_all(self, params: Optional[dict] = None) -> ApiResponse:
        return await self._client.request_json("GET", "/transactions", params=params)

    async def get(self, transaction_id: str) -> ApiResponse:
        return await self._client.request_json("GET", f"/transactions/{transaction_id}")

    async def create(self, data: dict) -> ApiResponse:
        return await self._client.request_json("POST", "/transactions", json=data)

    async def update(self, transaction_id: str, data: dict) -> ApiResponse:
        return await self._client.request_json("PUT", f"/transactions/{transaction_id}", json=data)

    async def delete(self, transaction_id: str) -> ApiResponse:
        return await self._client.request_json("DELETE", f"/transactions/{transaction_id}")

    async def bulk_update(self, transactions: list[dict]) -> ApiResponse:
        return await self._client.request_json("PATCH", "/transactions/bulk", json={"transactions": transactions})


# =============================================================================
# CLIENT
# =============================================================================

class BookkeeperApiClient:
    """
    Async client for the bookkeeping REST API.

    The underlying httpx client is created on first use. Use as an async
    context manager or call aclose() when done.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[], Any]] = None,
        settings: Optional[ApiSettings] = None,
    ):
        self.settings = settings or get_settings().api
        self.base_url = base_url or self.settings.base_url
        self.timeout = timeout if timeout is not None else self.settings.timeout_seconds
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.pdf = PdfEndpoints(self)
        self.csv = CsvEndpoints(self)
        self.reports = ReportEndpoints(self)
        self.classification = ClassificationEndpoints(self)
        self.transactions = TransactionEndpoints(self)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "BookkeeperApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _auth_headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        token = await _maybe_await(self._token_provider())
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        message, payload = _error_message(response)
        logger.warning(
            "api_request_failed",
            method=response.request.method,
            url=str(response.request.url),
            status=status,
            error=message,
        )
        if status == 401 and self._on_unauthorized:
            await _maybe_await(self._on_unauthorized())
        if status >= 500:
            raise ServerError(message, status_code=status, payload=payload)
        error_class = _STATUS_ERRORS.get(status, ApiError)
        raise error_class(message, status_code=status, payload=payload)

    @_retry_once
    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if kwargs.get("json") is not None:
            kwargs["json"] = to_jsonable_python(kwargs["json"])
        headers = await self._auth_headers()
        response = await self._get_client().request(method, path, headers=headers, **kwargs)
        await self._raise_for_status(response)
        return response

    async def request_json(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        response = await self._request(method, path, **kwargs)
        try:
            envelope = ApiResponse.model_validate(response.json())
        except ValueError as e:
            raise ApiError(f"Invalid response from {path}: {e}", status_code=response.status_code)
        if not envelope.success:
            error = envelope.error.code if isinstance(envelope.error, ApiErrorDetail) else envelope.error
            raise ApiError(envelope.message or error or "Request failed", payload=envelope)
        return envelope

    async def request_bytes(self, method: str, path: str, **kwargs: Any) -> bytes:
        response = await self._request(method, path, **kwargs)
        return response.content
