"""Exception types shared by the stores, services and HTTP layer."""
from __future__ import annotations


class JobTrackerError(Exception):
    """Base class for errors raised by this package."""


class NotFoundError(JobTrackerError):
    """The requested job does not exist."""


class ValidationError(JobTrackerError):
    """Malformed caller input. ``details`` lists every violated field."""

    def __init__(self, message: str, details: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class StorageError(JobTrackerError):
    """The record store or key-value store failed or is unreachable."""


class RemoteServiceError(JobTrackerError):
    """The remote AI generation call failed."""


class NonRetryableRemoteError(RemoteServiceError):
    """Failures a retry cannot fix, e.g. a misconfigured model name."""


class RetryableRemoteError(RemoteServiceError):
    """Transient failures: timeouts, rate limits, empty or truncated responses."""
