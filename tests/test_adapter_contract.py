"""
Contract tests to verify subscription gateways implement the SubscriptionGateway interface correctly.
These tests ensure any new gateway adapter follows the established contract.
"""

import inspect
import os
import sys

import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)
sys.path.append(os.path.join(ROOT_DIR, "app"))

from adapters.base import SubscriptionGateway, validate_amount, validate_currency_code  # noqa: E402
from adapters.exceptions import (  # noqa: E402
    AuthenticationError,
    BadPayloadError,
    NotFoundError,
    PaymentError,
    ProvisioningError,
    RemoteRequestError,
    ValidationError,
    VerificationError,
    WebhookError,
)
from adapters.paypal_subscriptions import PayPalSubscriptionsGateway  # noqa: E402


def get_all_gateway_classes():
    """Get all available gateway classes for testing."""
    return [PayPalSubscriptionsGateway]


class TestSubscriptionGatewayContract:
    """Test that all gateways conform to the SubscriptionGateway contract."""

    @pytest.mark.parametrize("gateway_class", get_all_gateway_classes())
    def test_gateway_inherits_from_base(self, gateway_class):
        assert issubclass(gateway_class, SubscriptionGateway)
        assert not inspect.isabstract(gateway_class)

    @pytest.mark.parametrize("gateway_class", get_all_gateway_classes())
    def test_gateway_implements_async_operations(self, gateway_class):
        for method_name in ("subscribe", "callback", "check_subscription", "cancel_subscription"):
            method = getattr(gateway_class, method_name)
            assert inspect.iscoroutinefunction(method), f"{gateway_class.__name__}.{method_name} is not async"
            assert method is not getattr(SubscriptionGateway, method_name)

    @pytest.mark.parametrize("gateway_class", get_all_gateway_classes())
    def test_gateway_identity(self, gateway_class):
        assert gateway_class.identifier
        assert gateway_class.version


class TestPayPalConfigFields:
    def test_host_facing_fields(self):
        fields = PayPalSubscriptionsGateway.config_fields()

        assert list(fields) == ["mode", "client_id", "client_secret"]
        assert fields["mode"]["type"] == "select"
        assert fields["mode"]["options"] == {"sandbox": "Sandbox", "live": "Live"}
        assert fields["mode"]["rules"] == ["required"]
        assert fields["client_id"]["rules"] == ["required", "string"]
        assert fields["client_secret"]["rules"] == ["required", "string"]

    def test_fields_are_a_copy(self):
        PayPalSubscriptionsGateway.config_fields()["mode"]["rules"].append("mutated")

        assert PayPalSubscriptionsGateway.config_fields()["mode"]["rules"] == ["required"]

    @pytest.mark.parametrize(
        "record",
        [
            {"client_id": "id", "client_secret": "secret"},
            {"mode": "production", "client_id": "id", "client_secret": "secret"},
            {"mode": "sandbox", "client_id": "", "client_secret": "secret"},
        ],
    )
    def test_invalid_record_rejected(self, record):
        with pytest.raises(ValidationError):
            PayPalSubscriptionsGateway("gw", record, store=None, http=None)


class TestGatewayExceptions:
    def test_error_hierarchy(self):
        for exc_class in (
            ValidationError,
            AuthenticationError,
            ProvisioningError,
            WebhookError,
            VerificationError,
            BadPayloadError,
            NotFoundError,
        ):
            assert issubclass(exc_class, PaymentError)
            exc_instance = exc_class("Test error message")
            assert str(exc_instance) == "Test error message"

        assert issubclass(VerificationError, WebhookError)
        assert issubclass(BadPayloadError, WebhookError)

    def test_remote_request_error_fields(self):
        error = RemoteRequestError("POST", "/billing/plans", {"name": "INVALID_REQUEST"}, 400)

        assert isinstance(error, PaymentError)
        assert error.method == "POST"
        assert error.path == "/billing/plans"
        assert error.response_body == {"name": "INVALID_REQUEST"}
        assert error.status_code == 400
        assert "POST /billing/plans" in str(error)


class TestValidators:
    def test_validate_currency_code(self):
        from decimal import Decimal

        assert validate_currency_code("USD") is True
        assert validate_currency_code("EUR") is True
        assert validate_currency_code("usd") is False
        assert validate_currency_code("US") is False
        assert validate_currency_code("USDD") is False
        assert validate_currency_code(123) is False
        assert validate_currency_code(Decimal("1")) is False

    def test_validate_amount(self):
        from decimal import Decimal

        assert validate_amount(Decimal("9.99")) is True
        assert validate_amount(Decimal("0")) is False
        assert validate_amount(Decimal("-10.00")) is False
        assert validate_amount("10.00") is False
        assert validate_amount(10.00) is False
