import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from config import get_settings
from adapters.base import parse_callback
from adapters.exceptions import (
    NotFoundError,
    PaymentError,
    ValidationError,
    WebhookError,
)
from adapters.paypal_subscriptions import (
    AccessTokenProvider,
    PayPalGatewayConfig,
    PayPalSubscriptionsGateway,
)
from models import Base
from store import SubscriptionStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("paypal-subscriptions")

class EndpointFilter(logging.Filter):
    """Filter out noisy health check access logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging filter
        return "GET /health" not in record.getMessage()


logging.getLogger("uvicorn.access").addFilter(EndpointFilter())


settings = get_settings()

CALLBACK_PATH = f"/webhooks/{PayPalSubscriptionsGateway.identifier}"


async def get_gateway(request: Request, gateway_id: str | None = None) -> PayPalSubscriptionsGateway:
    """Build a gateway bound to the current configuration record.

    Token providers outlive the request so the in-process token survives
    between calls when Redis is unavailable.
    """
    state = request.app.state
    gateway_id = gateway_id or settings.PAYPAL_GATEWAY_ID
    config = PayPalGatewayConfig.from_record(
        await state.store.load_gateway_config(gateway_id)
    )
    key = (config.mode, config.client_id, config.client_secret)
    tokens = state.token_providers.get(key)
    if tokens is None:
        tokens = AccessTokenProvider(
            state.http, config, state.redis, settings.PAYPAL_TOKEN_TTL
        )
        state.token_providers[key] = tokens
    return PayPalSubscriptionsGateway(
        gateway_id,
        config,
        state.store,
        state.http,
        public_base_url=settings.PUBLIC_BASE_URL,
        tokens=tokens,
    )


async def get_subscription(request: Request, subscription_id: str):
    subscription = await request.app.state.store.get_subscription(subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription not found: {subscription_id}")
    return subscription


# FastAPI App
@asynccontextmanager
async def lifespan(app: FastAPI):
    engine: AsyncEngine = create_async_engine(settings.database_url)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    redis: Redis | None = None
    try:
        redis = Redis.from_url(
            settings.redis_url, encoding="utf-8", decode_responses=True
        )
        await redis.ping()
    except Exception as exc:  # pragma: no cover - startup warning
        logger.warning("Redis unavailable: %s", exc)
        redis = None

    store = SubscriptionStore(sessionmaker)
    if settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET:
        await store.ensure_gateway(
            settings.PAYPAL_GATEWAY_ID,
            PayPalSubscriptionsGateway.identifier,
            {
                "mode": settings.PAYPAL_MODE,
                "client_id": settings.PAYPAL_CLIENT_ID,
                "client_secret": settings.PAYPAL_CLIENT_SECRET,
            },
        )
    else:
        logger.warning("PayPal credentials not configured; gateway record not seeded")

    app.state.store = store
    app.state.redis = redis
    app.state.token_providers = {}
    app.state.http = httpx.AsyncClient(timeout=settings.PAYPAL_HTTP_TIMEOUT)
    try:
        yield
    finally:
        await app.state.http.aclose()
        await engine.dispose()
        if redis is not None:
            await redis.close()

app = FastAPI(
    title="PayPal Subscriptions Gateway",
    version=PayPalSubscriptionsGateway.version,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, (WebhookError, ValidationError)):
        status_code = 400
    else:
        status_code = 502
    logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "paypal-subscriptions"}


@app.get("/gateways/paypal-subscriptions/config")
async def gateway_config_fields():
    return PayPalSubscriptionsGateway.config_fields()


@app.post("/subscriptions/{subscription_id}/subscribe")
async def subscribe(request: Request, subscription_id: str):
    subscription = await get_subscription(request, subscription_id)
    gateway = await get_gateway(request, subscription.gateway_id)
    redirect = await gateway.subscribe(subscription)
    return RedirectResponse(redirect.url, status_code=303)


@app.get("/subscriptions/{subscription_id}/status")
async def subscription_status(request: Request, subscription_id: str):
    subscription = await get_subscription(request, subscription_id)
    gateway = await get_gateway(request, subscription.gateway_id)
    active = await gateway.check_subscription(subscription)
    return {"subscription_id": subscription_id, "active": active}


@app.post("/subscriptions/{subscription_id}/cancel")
async def cancel_subscription(request: Request, subscription_id: str):
    subscription = await get_subscription(request, subscription_id)
    gateway = await get_gateway(request, subscription.gateway_id)
    cancelled = await gateway.cancel_subscription(subscription)
    return {"subscription_id": subscription_id, "cancelled": cancelled}


@app.api_route(CALLBACK_PATH, methods=["GET", "POST"])
async def paypal_callback(request: Request):
    """Redirect-return from the approval page, or a PayPal webhook delivery."""
    inbound = parse_callback(request.query_params, request.headers, await request.body())
    gateway = await get_gateway(request, request.query_params.get("gateway_id"))
    result = await gateway.callback(inbound)

    if result.redirect is not None:
        return RedirectResponse(result.redirect.url, status_code=303)
    return result.body


@app.get("/")
async def root():
    return {"message": "PayPal Subscriptions Gateway API", "callback_path": CALLBACK_PATH}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.HTTP_PORT,
        reload=True,
        log_level="info"
    )
