import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adapters.exceptions import NotFoundError
from models import STATUS_ACTIVE, Gateway, Subscription

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """Host-side persistence for subscriptions and gateway configuration."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        async with self._sessionmaker() as session:
            return await session.get(Subscription, subscription_id)

    async def update_subscription(
        self, subscription: Subscription, **fields: Any
    ) -> Subscription:
        """Write ``fields`` onto the stored row and the in-memory instance."""
        async with self._sessionmaker() as session:
            record = await session.get(Subscription, subscription.id)
            if record is None:
                raise NotFoundError(f"Subscription not found: {subscription.id}")
            for key, value in fields.items():
                setattr(record, key, value)
            await session.commit()

        for key, value in fields.items():
            setattr(subscription, key, value)
        logger.info("Updated subscription %s: %s", subscription.id, sorted(fields))
        return subscription

    async def activate_subscription(
        self,
        subscription: Subscription,
        remote_id: str,
        payload: Dict[str, Any],
    ) -> Subscription:
        return await self.update_subscription(
            subscription,
            status=STATUS_ACTIVE,
            subscription_id=remote_id,
            payload=payload,
            activated_at=datetime.now(timezone.utc),
        )

    async def load_gateway_config(self, gateway_id: str) -> Dict[str, Any]:
        async with self._sessionmaker() as session:
            gateway = await session.get(Gateway, gateway_id)
        if gateway is None:
            raise NotFoundError(f"Gateway not found: {gateway_id}")
        return dict(gateway.config or {})

    async def save_gateway_config(
        self, gateway_id: str, config: Dict[str, Any]
    ) -> bool:
        """Replace the stored configuration record. Returns False on failure."""
        try:
            async with self._sessionmaker() as session:
                gateway = await session.get(Gateway, gateway_id)
                if gateway is None:
                    logger.warning("Cannot save config for unknown gateway %s", gateway_id)
                    return False
                gateway.config = dict(config)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to save config for gateway %s: %s", gateway_id, exc)
            return False
        return True

    async def ensure_gateway(
        self, gateway_id: str, identifier: str, config: Dict[str, Any]
    ) -> Gateway:
        """Create the gateway record with ``config`` if it does not exist yet."""
        async with self._sessionmaker() as session:
            gateway = await session.get(Gateway, gateway_id)
            if gateway is None:
                gateway = Gateway(id=gateway_id, identifier=identifier, config=dict(config))
                session.add(gateway)
                await session.commit()
                logger.info("Created gateway record %s", gateway_id)
        return gateway
