from __future__ import annotations

import time


class ResolverError(Exception):
    """Base class for every error raised by hltb_resolver."""


class NetworkError(ResolverError):
    """
    Transport or HTTP failure.

    `status_code` is the HTTP status when one was received, 0 for timeouts and connection
    failures, and None when the failure happened before a request was made.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retriable(self) -> bool:
        code = self.status_code
        return code is None or code == 0 or code == 429 or code >= 500


class RateLimitError(ResolverError):
    def __init__(self, message: str, retry_after_s: float):
        super().__init__(message)
        self.retry_after_s = float(retry_after_s)
        self.reset_at = time.time() + self.retry_after_s


class ScrapingError(ResolverError):
    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ValidationError(ResolverError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class StorageError(ResolverError):
    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class RequestCancelledError(ResolverError):
    pass
