"""
Pytest configuration and fixtures for the subscriptions gateway tests.
"""

import json
import os
import sys
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Add app directory to Python path for imports
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)
sys.path.append(os.path.join(ROOT_DIR, "app"))

from adapters.paypal_subscriptions import PayPalSubscriptionsGateway  # noqa: E402
from models import Base, Gateway, Subscription  # noqa: E402
from store import SubscriptionStore  # noqa: E402

GATEWAY_ID = "gw-paypal"
SUBSCRIPTION_ID = "sub-1001"
TOKEN = "A21AA-test-token"


class FakePayPal:
    """In-memory stand-in for the PayPal REST API behind ``httpx.MockTransport``."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], tuple[int, object]] = {}
        self.respond("POST", "/oauth2/token", json={"access_token": TOKEN, "expires_in": 32400})

    def respond(self, method: str, path: str, status_code: int = 200, json=None):
        self.routes[(method, path)] = (status_code, json)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})
        status_code, body = route
        if body is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.removeprefix("/v1") == path
        ]

    def api_calls(self) -> list[httpx.Request]:
        """Every request except token fetches."""
        return [r for r in self.requests if not r.url.path.endswith("/oauth2/token")]

    @staticmethod
    def body(request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    redis_mock = AsyncMock()
    redis_mock.ping.return_value = True
    redis_mock.get.return_value = None
    redis_mock.setex.return_value = True
    redis_mock.close.return_value = None
    return redis_mock


@pytest.fixture
def paypal():
    return FakePayPal()


@pytest_asyncio.fixture
async def http(paypal):
    client = httpx.AsyncClient(transport=httpx.MockTransport(paypal.handler))
    yield client
    await client.aclose()


@pytest.fixture
def gateway_config():
    return {"mode": "sandbox", "client_id": "client-abc", "client_secret": "secret-xyz"}


@pytest_asyncio.fixture
async def sessionmaker(gateway_config):
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    async with sessionmaker() as session:
        session.add(
            Gateway(
                id=GATEWAY_ID,
                identifier=PayPalSubscriptionsGateway.identifier,
                config=dict(gateway_config),
            )
        )
        session.add(
            Subscription(
                id=SUBSCRIPTION_ID,
                gateway_id=GATEWAY_ID,
                name="Pro Plan",
                amount=Decimal("9.99"),
                currency="USD",
                frequency=30,
                data={},
                success_url="https://shop.example.com/billing/success",
                cancel_url="https://shop.example.com/billing/cancel",
            )
        )
        await session.commit()

    yield sessionmaker
    await engine.dispose()


@pytest.fixture
def store(sessionmaker):
    return SubscriptionStore(sessionmaker)


@pytest_asyncio.fixture
async def subscription(store):
    return await store.get_subscription(SUBSCRIPTION_ID)


@pytest_asyncio.fixture
async def gateway(store, http):
    config = await store.load_gateway_config(GATEWAY_ID)
    return PayPalSubscriptionsGateway(
        GATEWAY_ID,
        config,
        store,
        http,
        public_base_url="https://billing.example.com",
    )
