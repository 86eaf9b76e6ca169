"""PayPal recurring subscriptions adapter."""

from .client import AccessTokenProvider, PayPalClient
from .gateway import PayPalSubscriptionsGateway
from .plans import BillingInterval, PlanProvisioner, get_optimal_interval
from .schema import CONFIG_FIELDS, PayPalGatewayConfig
from .webhooks import WEBHOOK_EVENT_TYPES, WebhookRegistrar, WebhookVerifier

__all__ = [
    "AccessTokenProvider",
    "BillingInterval",
    "CONFIG_FIELDS",
    "PayPalClient",
    "PayPalGatewayConfig",
    "PayPalSubscriptionsGateway",
    "PlanProvisioner",
    "WEBHOOK_EVENT_TYPES",
    "WebhookRegistrar",
    "WebhookVerifier",
    "get_optimal_interval",
]
