"""Base classes and shared helpers for subscription gateways."""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from .exceptions import BadPayloadError

# Query parameter PayPal carries back to us on the approval return URL.
CORRELATION_PARAM = "correlation_id"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


# ==================== Validation ====================

def validate_currency_code(currency: Any) -> bool:
    """Return True for a three-letter upper-case ISO currency code."""
    return isinstance(currency, str) and bool(_CURRENCY_RE.match(currency))


def validate_amount(amount: Any) -> bool:
    """Return True for a positive ``Decimal`` amount."""
    return isinstance(amount, Decimal) and amount > 0


# ==================== Inbound callbacks ====================

@dataclass(frozen=True)
class Redirect:
    """A redirect the host should send the user's browser to."""

    url: str


@dataclass(frozen=True)
class RedirectReturn:
    """The user came back from the processor's approval page."""

    correlation_id: str


@dataclass(frozen=True)
class WebhookEvent:
    """An asynchronous event notification posted by the processor."""

    event_type: str
    resource: Dict[str, Any]
    payload: Dict[str, Any]
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


InboundCallback = Union[RedirectReturn, WebhookEvent]


@dataclass
class CallbackResult:
    """Outcome of a callback: either a browser redirect or a JSON body."""

    redirect: Optional[Redirect] = None
    body: Dict[str, Any] = field(default_factory=dict)


def parse_callback(
    query: Mapping[str, str],
    headers: Mapping[str, str],
    body: bytes,
) -> InboundCallback:
    """Decide once which kind of callback an inbound request is.

    A request carrying the correlation query parameter is a redirect-return;
    anything else must be a webhook delivery with a JSON ``event_type``.

    Raises:
        BadPayloadError: If the request is neither.
    """
    correlation_id = query.get(CORRELATION_PARAM)
    if correlation_id:
        return RedirectReturn(correlation_id=correlation_id)

    try:
        payload = json.loads(body.decode() or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadPayloadError("Webhook body is not valid JSON") from exc

    if not isinstance(payload, dict) or not payload.get("event_type"):
        raise BadPayloadError("Unexpected payload: missing event_type")

    resource = payload.get("resource")
    return WebhookEvent(
        event_type=payload["event_type"],
        resource=resource if isinstance(resource, dict) else {},
        payload=payload,
        headers={key.lower(): value for key, value in headers.items()},
    )


# ==================== Host store contract ====================

class GatewayStore(Protocol):
    """Persistence the host offers to a gateway adapter."""

    async def get_subscription(self, subscription_id: str) -> Any:
        ...

    async def update_subscription(self, subscription: Any, **fields: Any) -> Any:
        ...

    async def activate_subscription(
        self, subscription: Any, remote_id: str, payload: Dict[str, Any]
    ) -> Any:
        ...

    async def load_gateway_config(self, gateway_id: str) -> Dict[str, Any]:
        ...

    async def save_gateway_config(
        self, gateway_id: str, config: Dict[str, Any]
    ) -> bool:
        ...


# ==================== Base Gateway ====================

class SubscriptionGateway(ABC):
    """Abstract base class for recurring-payment gateway adapters."""

    identifier: str = ""
    version: str = "1.0.0"

    @classmethod
    @abstractmethod
    def config_fields(cls) -> Dict[str, Dict[str, Any]]:
        """Describe the configuration fields the host must collect.

        Returns:
            Mapping of field name to label, description, type, and rules
        """
        pass

    @abstractmethod
    async def subscribe(self, subscription: Any) -> Redirect:
        """Provision a remote subscription and return the approval redirect.

        Args:
            subscription: Host subscription record

        Returns:
            Redirect to the processor's approval page
        """
        pass

    @abstractmethod
    async def callback(self, inbound: InboundCallback) -> CallbackResult:
        """Reconcile local state from a redirect-return or webhook.

        Args:
            inbound: Parsed callback from ``parse_callback``

        Returns:
            Redirect or acknowledgement body for the host to send
        """
        pass

    @abstractmethod
    async def check_subscription(self, subscription: Any) -> bool:
        """Return whether the remote subscription is active."""
        pass

    @abstractmethod
    async def cancel_subscription(self, subscription: Any) -> bool:
        """Cancel the remote subscription.

        Returns:
            True once the processor accepted the cancellation
        """
        pass
