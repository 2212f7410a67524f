"""Downloader-specific exceptions with HTTP-aware error details.

This module provides the closed exception hierarchy used across the API.
Every exception carries the HTTP status it maps to, a stable error title
and a user-facing message, plus optional URL and job id for log tracing.

Exception Hierarchy:
    DownloadError (base, 500)
        ValidationError (400)
        UnauthorizedError (401)
        ForbiddenError (403)
        NotFoundError (404)
        ExtractionTimeoutError (408)
        PrivateOrUnavailableError
            PrivateVideoError (403)
            VideoUnavailableError (410)
        RateLimitError (429)
        UnsupportedURLError (500)
        MetadataExtractionError (500)
        ProcessFailedError (500)
            ProcessStartError (500)
        StorageFullError (507)
"""
from typing import Any, List, Optional


class DownloadError(Exception):
    """Base exception for all API and pipeline errors.

    Attributes:
        message: Technical error message for logging
        url: The URL that was being processed (if available)
        job_id: Job the error belongs to (if any)
        details: Optional structured details (validation failures)
    """

    status_code = 500
    error = "Internal Server Error"

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        job_id: Optional[str] = None,
        details: Optional[List[Any]] = None,
    ):
        self.message = message
        self.url = url
        self.job_id = job_id
        self.details = details
        super().__init__(self.message)

    def to_user_message(self) -> str:
        """Return a user-facing error message.

        Override in subclasses to provide specific messages.
        """
        return "Something went wrong on our end"

    def __str__(self) -> str:
        """String representation with technical details for logging."""
        parts = [self.message]
        if self.url:
            parts.append(f"url={self.url}")
        if self.job_id:
            parts.append(f"job_id={self.job_id}")
        return f"[{self.__class__.__name__}] {' | '.join(parts)}"


class ValidationError(DownloadError):
    """Raised when request input is malformed (bad URL, bad enum value)."""

    status_code = 400
    error = "Invalid input"

    def to_user_message(self) -> str:
        return self.message


class UnauthorizedError(DownloadError):
    """Raised when a credential is missing or not recognised."""

    status_code = 401
    error = "Unauthorized"

    def to_user_message(self) -> str:
        return self.message


class ForbiddenError(DownloadError):
    """Raised when a credential is present but not acceptable."""

    status_code = 403
    error = "Forbidden"

    def to_user_message(self) -> str:
        return self.message


class NotFoundError(DownloadError):
    """Raised for unknown jobs and routes."""

    status_code = 404
    error = "Not Found"

    def to_user_message(self) -> str:
        return self.message


class ExtractionTimeoutError(DownloadError):
    """Raised when metadata extraction exceeds its wall-clock bound."""

    status_code = 408
    error = "Request Timeout"

    def to_user_message(self) -> str:
        return "Video processing timed out. Please try again."


class PrivateOrUnavailableError(DownloadError):
    """Raised when the source refuses access to the video.

    Use the concrete subclasses where the failure text tells them apart.
    """

    status_code = 403
    error = "Access Denied"

    def to_user_message(self) -> str:
        return "Video is private or unavailable"


class PrivateVideoError(PrivateOrUnavailableError):
    """The video exists but is private."""

    status_code = 403
    error = "Access Denied"

    def to_user_message(self) -> str:
        return "This video is private or requires authentication"


class VideoUnavailableError(PrivateOrUnavailableError):
    """The video was removed or is not available."""

    status_code = 410
    error = "Content Unavailable"

    def to_user_message(self) -> str:
        return "This video is no longer available"


class RateLimitError(DownloadError):
    """Raised when a client exceeds its request budget.

    Attributes:
        retry_after: Seconds until the client may retry
    """

    status_code = 429
    error = "Too Many Requests"

    def __init__(self, message: str, retry_after: Optional[int] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)

    def to_user_message(self) -> str:
        return "Too many requests from this IP, please try again later."


class UnsupportedURLError(DownloadError):
    """Raised when the extractor does not recognise the URL."""

    def to_user_message(self) -> str:
        return "This URL is not supported"


class MetadataExtractionError(DownloadError):
    """Raised when metadata extraction fails for any other reason."""

    def to_user_message(self) -> str:
        return self.message


class ProcessFailedError(DownloadError):
    """Raised when an external process exits with a failure.

    Attributes:
        returncode: Exit status of the process (None if it never ran)
        stderr: Captured error text
    """

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        **kwargs,
    ):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, **kwargs)


class ProcessStartError(ProcessFailedError):
    """Raised when an external executable cannot be launched at all."""


class StorageFullError(DownloadError):
    """Raised when the filesystem runs out of space."""

    status_code = 507
    error = "Storage Full"

    def to_user_message(self) -> str:
        return "Server storage is full. Please try again later."


__all__ = [
    "DownloadError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ExtractionTimeoutError",
    "PrivateOrUnavailableError",
    "PrivateVideoError",
    "VideoUnavailableError",
    "RateLimitError",
    "UnsupportedURLError",
    "MetadataExtractionError",
    "ProcessFailedError",
    "ProcessStartError",
    "StorageFullError",
]
