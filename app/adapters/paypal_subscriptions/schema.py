"""Configuration record for the PayPal subscriptions gateway."""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError

SANDBOX_API_URL = "https://api-m.sandbox.paypal.com/v1"
LIVE_API_URL = "https://api-m.paypal.com/v1"

# Fields the host collects from an operator. The webhook ids are written by
# the adapter itself and are not part of this form.
CONFIG_FIELDS: Dict[str, Dict[str, Any]] = {
    "mode": {
        "label": "PayPal Mode (Sandbox/Live)",
        "description": "Select sandbox for testing or live for production",
        "type": "select",
        "options": {"sandbox": "Sandbox", "live": "Live"},
        "rules": ["required"],
    },
    "client_id": {
        "label": "PayPal Client ID",
        "description": "Your PayPal REST API Client ID",
        "type": "text",
        "rules": ["required", "string"],
    },
    "client_secret": {
        "label": "PayPal Client Secret",
        "description": "Your PayPal REST API Client Secret",
        "type": "text",
        "rules": ["required", "string"],
    },
}


class PayPalGatewayConfig(BaseModel):
    """Validated view of a gateway configuration record."""

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    mode: Literal["sandbox", "live"]
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    sandbox_webhook_id: Optional[str] = None
    live_webhook_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PayPalGatewayConfig":
        try:
            return cls.model_validate(record)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid PayPal gateway configuration: {exc}") from exc

    @property
    def is_sandbox(self) -> bool:
        return self.mode == "sandbox"

    @property
    def webhook_key(self) -> str:
        """Name of the config field holding this environment's webhook id."""
        return "sandbox_webhook_id" if self.is_sandbox else "live_webhook_id"

    @property
    def webhook_id(self) -> Optional[str]:
        return getattr(self, self.webhook_key)

    @property
    def api_url(self) -> str:
        return SANDBOX_API_URL if self.is_sandbox else LIVE_API_URL
