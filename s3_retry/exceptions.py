"""Custom exceptions for the retrying uploader."""

from typing import Any, Optional


class S3RetryError(Exception):
    """Base class for uploader errors."""


class ConfigurationError(S3RetryError):
    """Raised when required credentials or bucket settings are missing or invalid."""


class LocalFileError(S3RetryError):
    """Raised when a source file cannot be read. Never retried."""

    def __init__(self, path: str, cause: Optional[Exception] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read source file '{path}': {cause}")


class UploadStatusError(S3RetryError):
    """Raised when storage answers a put with a status other than 200."""

    def __init__(self, key: str, status_code: int, body: Any = None):
        self.key = key
        self.status_code = status_code
        self.body = body
        super().__init__(f"Upload of '{key}' returned HTTP {status_code}")


class RetriesExhaustedError(S3RetryError):
    """Raised when an upload failed on every attempt it was allowed."""

    def __init__(self, key: str, attempts: int, last_error: Exception):
        self.key = key
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Upload of '{key}' failed after {attempts} attempt(s): {last_error}"
        )
        self.__cause__ = last_error


class UploadCancelledError(S3RetryError):
    """Raised when an upload is cancelled before reaching a terminal state."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Upload of '{key}' was cancelled")


class BatchUploadError(S3RetryError):
    """Raised for the first failed upload of a batch."""

    def __init__(self, index: int, source: str, cause: Exception):
        self.index = index
        self.source = source
        self.cause = cause
        super().__init__(f"Batch upload of '{source}' (item {index}) failed: {cause}")
        self.__cause__ = cause
