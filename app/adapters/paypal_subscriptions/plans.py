"""Catalog products and recurring billing plans."""

import logging
from typing import Any, Dict, NamedTuple, Optional

from ..base import validate_amount, validate_currency_code
from ..exceptions import ProvisioningError, ValidationError
from .client import PayPalClient

logger = logging.getLogger(__name__)

PLAN_ID_KEY = "paypal_plan_id"

# Day-equivalents, largest first. The trailing 1 divides everything.
INTERVALS = (
    (365, "YEAR"),
    (30, "MONTH"),
    (7, "WEEK"),
    (1, "DAY"),
)


class BillingInterval(NamedTuple):
    count: int
    unit: str


def get_optimal_interval(days: int) -> BillingInterval:
    """Pick the largest interval unit that divides ``days`` exactly.

    >>> get_optimal_interval(90)
    BillingInterval(count=3, unit='MONTH')
    >>> get_optimal_interval(400)
    BillingInterval(count=400, unit='DAY')
    """
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError(f"Invalid billing frequency: {days!r} days")

    for day_equivalent, unit in INTERVALS:
        if days % day_equivalent == 0:
            break
    return BillingInterval(days // day_equivalent, unit)


class PlanProvisioner:
    def __init__(self, client: PayPalClient):
        self._client = client

    async def resolve_plan_id(self, subscription) -> Optional[str]:
        """Use a host-supplied plan id, or create a product and plan."""
        plan_id = subscription.data_value(PLAN_ID_KEY)
        if plan_id:
            logger.info("Using supplied plan %s for subscription %s", plan_id, subscription.id)
            return plan_id
        return await self.create_plan(subscription)

    async def create_product(self, subscription) -> Dict[str, Any]:
        return await self._client.call(
            "POST",
            "/catalogs/products",
            {
                "name": subscription.name,
                "type": "DIGITAL",
                "category": "SOFTWARE",
            },
        )

    async def create_plan(self, subscription) -> str:
        if not validate_amount(subscription.amount):
            raise ValidationError(f"Invalid amount: {subscription.amount}")
        if not validate_currency_code(subscription.currency):
            raise ValidationError(f"Invalid currency code: {subscription.currency}")
        interval = get_optimal_interval(subscription.frequency)

        product = await self.create_product(subscription)
        if not product.get("id"):
            raise ProvisioningError("Product response has no id")

        plan = await self._client.call(
            "POST",
            "/billing/plans",
            {
                "product_id": product["id"],
                "name": subscription.name,
                "billing_cycles": [
                    {
                        "frequency": {
                            "interval_unit": interval.unit,
                            "interval_count": interval.count,
                        },
                        "tenure_type": "REGULAR",
                        "sequence": 1,
                        "total_cycles": 0,  # renews until cancelled
                        "pricing_scheme": {
                            "fixed_price": {
                                "value": str(subscription.amount),
                                "currency_code": subscription.currency,
                            }
                        },
                    }
                ],
                "payment_preferences": {
                    "auto_bill_outstanding": True,
                    "setup_fee_failure_action": "CONTINUE",
                    "payment_failure_threshold": 3,
                },
            },
        )
        plan_id = plan.get("id")
        if not plan_id:
            raise ProvisioningError("Failed to create plan")

        logger.info(
            "Created plan %s (%s x %s) for subscription %s",
            plan_id,
            interval.count,
            interval.unit,
            subscription.id,
        )
        return plan_id
