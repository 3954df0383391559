"""Shared error types for resilient_random."""

from __future__ import annotations


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""


class RandomNumberRequestError(RuntimeError):
    """Base exception for random-number provider failures."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status observed from the provider.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class TransientRemoteFailure(RandomNumberRequestError, TransientError):
    """Raised for retryable provider failures."""


class RemoteTransportError(TransientRemoteFailure):
    """Raised when the provider cannot be reached at the transport level."""


class RemoteStatusError(TransientRemoteFailure):
    """Raised when the provider answers with a non-success HTTP status."""


class InvalidPayloadError(TransientRemoteFailure):
    """Raised when the provider body is not a valid random-number object."""


class InvalidRandomNumberError(TransientRemoteFailure):
    """Raised when the provider returns a number outside the accepted range."""


class TerminalFailureError(RuntimeError):
    """Raised when no remote value was obtained and fallback is disabled.

    Attributes:
        reason: Short machine-readable name of the last failure kind.
        detail: Human-readable description of the last failure.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = f"random_number_unavailable: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
