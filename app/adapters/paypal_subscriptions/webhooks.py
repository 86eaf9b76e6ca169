"""Webhook registration and signature verification."""

import logging

from ..base import GatewayStore, WebhookEvent
from ..exceptions import (
    AuthenticationError,
    ProvisioningError,
    RemoteRequestError,
    VerificationError,
)
from .client import PayPalClient
from .schema import PayPalGatewayConfig

logger = logging.getLogger(__name__)

WEBHOOK_EVENT_TYPES = (
    "BILLING.SUBSCRIPTION.ACTIVATED",
    "BILLING.SUBSCRIPTION.CANCELLED",
    "BILLING.SUBSCRIPTION.EXPIRED",
    "BILLING.SUBSCRIPTION.RE-ACTIVATED",
    "BILLING.SUBSCRIPTION.SUSPENDED",
    "PAYMENT.SALE.COMPLETED",
)

# verify-webhook-signature field -> transmission header
TRANSMISSION_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


class WebhookRegistrar:
    """Keeps exactly one registered webhook per environment."""

    def __init__(
        self,
        client: PayPalClient,
        store: GatewayStore,
        gateway_id: str,
        config: PayPalGatewayConfig,
        callback_url: str,
    ):
        self._client = client
        self._store = store
        self._gateway_id = gateway_id
        self._config = config
        self._callback_url = callback_url

    async def ensure_webhook(self) -> str:
        """Return the stored webhook id, registering one if none is stored."""
        existing = self._config.webhook_id
        if existing:
            return existing

        webhook = await self._client.call(
            "POST",
            "/notifications/webhooks",
            {
                "url": self._callback_url,
                "event_types": [{"name": name} for name in WEBHOOK_EVENT_TYPES],
            },
        )
        webhook_id = webhook.get("id")
        if not webhook_id:
            raise ProvisioningError("Webhook response has no id")

        key = self._config.webhook_key
        stored = await self._store.load_gateway_config(self._gateway_id)
        if not await self._store.save_gateway_config(
            self._gateway_id, {**stored, key: webhook_id}
        ):
            logger.warning(
                "Webhook %s registered but not persisted for gateway %s",
                webhook_id,
                self._gateway_id,
            )
        setattr(self._config, key, webhook_id)

        logger.info("Registered %s webhook %s", self._config.mode, webhook_id)
        return webhook_id


class WebhookVerifier:
    """Asks PayPal whether a delivery really came from PayPal."""

    def __init__(self, client: PayPalClient, registrar: WebhookRegistrar):
        self._client = client
        self._registrar = registrar

    async def verify(self, event: WebhookEvent) -> None:
        """Raise ``VerificationError`` unless PayPal reports ``SUCCESS``."""
        webhook_id = await self._registrar.ensure_webhook()
        body = {
            field: event.header(header)
            for field, header in TRANSMISSION_HEADERS.items()
        }
        body["webhook_id"] = webhook_id
        body["webhook_event"] = event.payload

        try:
            result = await self._client.call(
                "POST", "/notifications/verify-webhook-signature", body
            )
        except (AuthenticationError, RemoteRequestError) as exc:
            raise VerificationError("Failed to verify webhook signature") from exc

        status = result.get("verification_status")
        if status != "SUCCESS":
            logger.warning(
                "Webhook %s failed verification: %s",
                event.header("PAYPAL-TRANSMISSION-ID"),
                status,
            )
            raise VerificationError(f"Webhook signature verification status: {status}")
