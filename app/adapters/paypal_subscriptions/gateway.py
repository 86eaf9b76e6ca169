"""PayPal recurring subscriptions gateway."""

import copy
import logging
from typing import Any, Dict, Optional, Union
from urllib.parse import urlencode

import httpx
from redis.asyncio import Redis

from ..base import (
    CORRELATION_PARAM,
    CallbackResult,
    GatewayStore,
    InboundCallback,
    Redirect,
    RedirectReturn,
    SubscriptionGateway,
    WebhookEvent,
)
from ..exceptions import NotFoundError, ProvisioningError, RemoteRequestError
from .client import AccessTokenProvider, PayPalClient
from .plans import PlanProvisioner
from .schema import CONFIG_FIELDS, PayPalGatewayConfig
from .webhooks import WebhookRegistrar, WebhookVerifier

logger = logging.getLogger(__name__)

EVENT_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
EVENT_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
EVENT_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"
SUBSCRIPTION_EVENTS = (EVENT_ACTIVATED, EVENT_CANCELLED, EVENT_EXPIRED)

CANCEL_REASON = "User canceled subscription"


class PayPalSubscriptionsGateway(SubscriptionGateway):
    """Delegates recurring billing to PayPal's Subscriptions API.

    One instance serves one request against one gateway configuration record.
    It needs the host store (subscriptions + gateway config), a shared
    ``httpx.AsyncClient`` and, optionally, Redis for the access token.
    """

    identifier = "paypal-subscriptions"
    version = "1.0.0"

    def __init__(
        self,
        gateway_id: str,
        config: Union[PayPalGatewayConfig, Dict[str, Any]],
        store: GatewayStore,
        http: httpx.AsyncClient,
        cache: Optional[Redis] = None,
        public_base_url: str = "http://localhost:8000",
        token_ttl: int = 60,
        tokens: Optional[AccessTokenProvider] = None,
    ) -> None:
        if not isinstance(config, PayPalGatewayConfig):
            config = PayPalGatewayConfig.from_record(config)
        self.gateway_id = gateway_id
        self.config = config
        self._store = store
        self._public_base_url = public_base_url.rstrip("/")

        if tokens is None:
            tokens = AccessTokenProvider(http, config, cache, token_ttl)
        self._client = PayPalClient(http, config, tokens)
        self._plans = PlanProvisioner(self._client)
        self.webhooks = WebhookRegistrar(
            self._client,
            store,
            gateway_id,
            config,
            self.callback_url(gateway_id=gateway_id),
        )
        self._verifier = WebhookVerifier(self._client, self.webhooks)

    @classmethod
    def config_fields(cls) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(CONFIG_FIELDS)

    def callback_url(self, **params: str) -> str:
        return f"{self._public_base_url}/webhooks/{self.identifier}?{urlencode(params)}"

    # ==================== Subscribe ====================

    async def subscribe(self, subscription) -> Redirect:
        await self.webhooks.ensure_webhook()

        plan_id = await self._plans.resolve_plan_id(subscription)
        if not plan_id:
            raise ProvisioningError("Failed to create plan")

        remote = await self.create_remote_subscription(subscription, plan_id)
        if not remote.get("id"):
            raise ProvisioningError("Subscription response has no id")

        # Stored before approval so status checks work even if approval never completes.
        await self._store.update_subscription(subscription, subscription_id=remote["id"])

        links = remote.get("links")
        if not links:
            raise ProvisioningError("Failed to create subscription")

        for link in links:
            if link.get("rel") == "approve":
                logger.info(
                    "Subscription %s awaiting approval as %s",
                    subscription.id,
                    remote.get("id"),
                )
                return Redirect(url=link["href"])

        raise ProvisioningError("Approval link not found")

    async def create_remote_subscription(self, subscription, plan_id: str) -> Dict[str, Any]:
        return await self._client.call(
            "POST",
            "/billing/subscriptions",
            {
                "plan_id": plan_id,
                "custom_id": str(subscription.id),
                "application_context": {
                    "return_url": self.callback_url(
                        gateway_id=self.gateway_id,
                        **{CORRELATION_PARAM: str(subscription.id)},
                    ),
                    "cancel_url": subscription.cancel_url,
                },
            },
        )

    # ==================== Callbacks ====================

    async def callback(self, inbound: InboundCallback) -> CallbackResult:
        if isinstance(inbound, RedirectReturn):
            return await self._handle_redirect_return(inbound)
        return await self._handle_webhook(inbound)

    async def _handle_redirect_return(self, inbound: RedirectReturn) -> CallbackResult:
        subscription = await self._store.get_subscription(inbound.correlation_id)
        if subscription is None:
            raise NotFoundError(f"Subscription not found: {inbound.correlation_id}")

        remote_id = self._remote_id(subscription)
        remote = await self._client.call("GET", f"/billing/subscriptions/{remote_id}")

        if remote.get("status") != "ACTIVE":
            logger.info(
                "Subscription %s returned with remote status %s; waiting for webhook",
                subscription.id,
                remote.get("status"),
            )
            return CallbackResult(body={"status": "pending"})

        if not subscription.is_active():
            await self._store.activate_subscription(subscription, remote_id, remote)
            logger.info("Activated subscription %s on return", subscription.id)
        return CallbackResult(redirect=Redirect(url=subscription.success_url))

    async def _handle_webhook(self, event: WebhookEvent) -> CallbackResult:
        # Nothing below may touch local state unless this passes.
        await self._verifier.verify(event)

        if event.event_type in SUBSCRIPTION_EVENTS:
            custom_id = event.resource.get("custom_id")
            remote_id = event.resource.get("id")

            if not custom_id:
                logger.warning("%s event without custom_id ignored", event.event_type)
            elif event.event_type == EVENT_ACTIVATED:
                await self._activate_from_webhook(custom_id, remote_id, event.payload)
            else:
                # Cancellation and expiry policy belongs to the host.
                logger.info("Received %s for subscription %s", event.event_type, custom_id)
        else:
            logger.info("Unhandled webhook type: %s", event.event_type)

        return CallbackResult(body={"status": "ok"})

    async def _activate_from_webhook(
        self, custom_id: str, remote_id: Optional[str], payload: Dict[str, Any]
    ) -> None:
        subscription = await self._store.get_subscription(custom_id)
        if subscription is None:
            logger.warning("Activation for unknown subscription %s ignored", custom_id)
            return
        if subscription.is_active():
            logger.info("Subscription %s already active", custom_id)
            return

        await self._store.activate_subscription(
            subscription, remote_id or subscription.subscription_id, payload
        )
        logger.info("Activated subscription %s from webhook", custom_id)

    # ==================== Status ====================

    async def check_subscription(self, subscription) -> bool:
        path = f"/billing/subscriptions/{self._remote_id(subscription)}"
        remote = await self._client.call("GET", path)
        if "status" not in remote:
            raise RemoteRequestError("GET", path, remote)
        return remote["status"] == "ACTIVE"

    async def cancel_subscription(self, subscription) -> bool:
        await self._client.call(
            "POST",
            f"/billing/subscriptions/{self._remote_id(subscription)}/cancel",
            {"reason": CANCEL_REASON},
        )
        logger.info("Cancelled remote subscription for %s", subscription.id)
        return True

    @staticmethod
    def _remote_id(subscription) -> str:
        if not subscription.subscription_id:
            raise ProvisioningError(
                f"Subscription {subscription.id} has no remote subscription id"
            )
        return subscription.subscription_id
