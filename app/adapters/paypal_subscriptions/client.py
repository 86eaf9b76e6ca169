"""Authenticated access to the PayPal REST API."""

import logging
import time
from typing import Any, Dict, Optional

import httpx
from redis.asyncio import Redis

from ..exceptions import AuthenticationError, RemoteRequestError
from .schema import PayPalGatewayConfig

logger = logging.getLogger(__name__)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class AccessTokenProvider:
    """OAuth2 client-credentials token, cached for a short fixed window.

    The token lives in Redis when one is available so every worker shares it;
    otherwise it is held on this instance. Cache failures only cost a fetch.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: PayPalGatewayConfig,
        cache: Optional[Redis] = None,
        ttl: int = 60,
    ):
        self._http = http
        self._config = config
        self._cache = cache
        self._ttl = ttl
        self._token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def cache_key(self) -> str:
        return (
            f"paypal-subscriptions:{self._config.mode}:"
            f"{self._config.client_id}:access_token"
        )

    async def get_access_token(self) -> str:
        token = await self._cached_token()
        if token:
            return token

        token = await self._fetch_token()
        await self._remember(token)
        return token

    async def _cached_token(self) -> Optional[str]:
        if self._cache is not None:
            try:
                cached = await self._cache.get(self.cache_key)
                if cached:
                    return cached.decode() if isinstance(cached, bytes) else cached
            except Exception as exc:  # pragma: no cover - cache failure
                logger.warning("Redis lookup failed for %s: %s", self.cache_key, exc)

        if self._token and time.monotonic() < self._expires_at:
            return self._token
        return None

    async def _remember(self, token: str) -> None:
        self._token = token
        self._expires_at = time.monotonic() + self._ttl
        if self._cache is not None:
            try:
                await self._cache.setex(self.cache_key, self._ttl, token)
            except Exception as exc:  # pragma: no cover - cache failure
                logger.warning("Failed to cache access token: %s", exc)

    async def _fetch_token(self) -> str:
        url = f"{self._config.api_url}/oauth2/token"
        try:
            response = await self._http.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(self._config.client_id, self._config.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Access token request failed: %s", exc)
            raise AuthenticationError(f"Failed to get access token: {exc}") from exc

        if not response.is_success:
            logger.error(
                "Access token request returned %s: %s",
                response.status_code,
                _response_body(response),
            )
            raise AuthenticationError(
                f"Failed to get access token: HTTP {response.status_code}"
            )

        data = _response_body(response)
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Token response has no access_token")

        logger.info("Obtained PayPal access token (%s)", self._config.mode)
        return token


class PayPalClient:
    """Single request helper used for every processor call."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: PayPalGatewayConfig,
        tokens: AccessTokenProvider,
    ):
        self._http = http
        self._config = config
        self._tokens = tokens

    async def call(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send an authenticated request and return the parsed JSON body.

        Raises:
            AuthenticationError: If no access token could be obtained
            RemoteRequestError: On a transport error or non-2xx response
        """
        token = await self._tokens.get_access_token()
        try:
            response = await self._http.request(
                method,
                f"{self._config.api_url}{path}",
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("PayPal %s %s failed: %s", method, path, exc)
            raise RemoteRequestError(method, path, str(exc)) from exc

        if not response.is_success:
            response_body = _response_body(response)
            logger.error(
                "PayPal %s %s returned %s: %s",
                method,
                path,
                response.status_code,
                response_body,
            )
            raise RemoteRequestError(method, path, response_body, response.status_code)

        if not response.content:
            return {}

        data = _response_body(response)
        if not isinstance(data, dict):
            raise RemoteRequestError(method, path, data, response.status_code)
        return data
