"""REST API client."""

from bookkeeper.api.client import (
    ApiError,
    AuthenticationError,
    BookkeeperApiClient,
    ForbiddenError,
    NotFoundApiError,
    PollingTimeoutError,
    ProcessingFailedError,
    ServerError,
)

__all__ = [
    "ApiError",
    "AuthenticationError",
    "BookkeeperApiClient",
    "ForbiddenError",
    "NotFoundApiError",
    "PollingTimeoutError",
    "ProcessingFailedError",
    "ServerError",
]
