"""Adapters for integrating external subscription processors."""

from .base import SubscriptionGateway
from .exceptions import PaymentError, ValidationError, AuthenticationError, RemoteRequestError, ProvisioningError, WebhookError, VerificationError, BadPayloadError, NotFoundError

__all__ = ["SubscriptionGateway", "PaymentError", "ValidationError", "AuthenticationError", "RemoteRequestError", "ProvisioningError", "WebhookError", "VerificationError", "BadPayloadError", "NotFoundError"]
