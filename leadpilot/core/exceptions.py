"""Custom exception classes for the application."""

from typing import Optional


class LeadPilotError(Exception):
    """Base exception for all LeadPilot errors.

    Attributes:
        status_code: HTTP status the API layer responds with
        retryable: Whether ResilientCaller may re-issue the failed call
    """

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(LeadPilotError):
    """Raised for malformed or missing input."""

    status_code = 400


class AuthError(LeadPilotError):
    """Raised when the caller identity cannot be established."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class QuotaError(LeadPilotError):
    """Raised when a rate-limit tier rejects a request.

    Burst rejections map to 429, plan-quota rejections to 403.
    """

    def __init__(self, message: str, tier: str = "burst", retry_after: int = 0):
        self.tier = tier
        self.retry_after = retry_after
        self.status_code = 429 if tier == "burst" else 403
        super().__init__(message)


class NotFoundError(LeadPilotError):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class UpstreamError(LeadPilotError):
    """Base class for failures of an external call."""

    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class UpstreamTimeoutError(UpstreamError):
    """Raised when an external call exceeded its deadline."""

    status_code = 504
    retryable = True


class UpstreamTransientError(UpstreamError):
    """Raised for network errors, upstream 5xx and plain 429 throttling."""

    retryable = True


class UpstreamRejectedError(UpstreamError):
    """Raised when the upstream refused the request itself (4xx)."""


class UpstreamUnavailableError(UpstreamError):
    """Raised when the upstream quota or billing is exhausted."""

    status_code = 503


class AdapterUnsupportedError(LeadPilotError):
    """Raised when no source adapter exists for a platform."""

    status_code = 400

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Adapter not available for platform {platform}")


class PersistenceError(LeadPilotError):
    """Raised when writing one record fails."""

    status_code = 500
