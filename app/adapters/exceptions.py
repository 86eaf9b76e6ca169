"""Exceptions raised by subscription gateway adapters."""

from typing import Any, Optional


class PaymentError(Exception):
    """Base exception for payment-related errors."""
    pass


class ValidationError(PaymentError):
    """Raised when input validation fails."""
    pass


class AuthenticationError(PaymentError):
    """Raised when an access token cannot be obtained."""
    pass


class RemoteRequestError(PaymentError):
    """Raised when the processor answers a call with a non-success status."""

    def __init__(
        self,
        method: str,
        path: str,
        response_body: Optional[Any] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.method = method
        self.path = path
        self.response_body = response_body
        self.status_code = status_code
        super().__init__(f"{method} {path} failed: {response_body}")


class ProvisioningError(PaymentError):
    """Raised when plan or subscription creation returns an unexpected shape."""
    pass


class WebhookError(PaymentError):
    """Raised when webhook processing fails."""
    pass


class VerificationError(WebhookError):
    """Raised when a webhook signature cannot be verified."""
    pass


class BadPayloadError(WebhookError):
    """Raised when an inbound webhook body is malformed."""
    pass


class NotFoundError(PaymentError):
    """Raised when a correlation id does not resolve to a local subscription."""
    pass
