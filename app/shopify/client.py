"""
Storefront side: Shopify GraphQL Admin API client.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

LOW_POINTS_THRESHOLD = 100


class ShopifyClientError(Exception):
    """Any failure talking to the storefront."""
    pass


class ShopifyAuthError(ShopifyClientError):
    """Access token missing scopes or rejected (HTTP 401/403)."""
    pass


class ShopifyTimeoutError(ShopifyClientError):
    """Request did not complete within the configured timeout."""
    pass


class ShopifyRateLimitError(ShopifyClientError):
    """HTTP 429 or a THROTTLED GraphQL error."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ShopifyUserError(ShopifyClientError):
    """Mutation reached Shopify but was rejected with field-level errors."""

    def __init__(self, user_errors: List[Dict[str, Any]]):
        self.user_errors = user_errors
        messages = [e.get("message", str(e)) for e in user_errors]
        super().__init__("; ".join(messages) or "Unknown user error")


def normalize_domain(shop_domain: str) -> str:
    """Strip scheme and trailing slashes from a store URL."""
    domain = shop_domain.strip()
    if domain.lower().startswith("https://"):
        domain = domain[8:]
    elif domain.lower().startswith("http://"):
        domain = domain[7:]
    return domain.rstrip("/")


def raise_for_user_errors(payload: Optional[Dict[str, Any]]) -> None:
    """Raise ShopifyUserError if a mutation payload carries userErrors."""
    user_errors = (payload or {}).get("userErrors") or []
    if user_errors:
        raise ShopifyUserError(user_errors)


class ShopifyClient:
    """
    GraphQL client for one store.

    Throttling, timeouts and transport errors are retried with exponential
    backoff up to MAX_RETRIES attempts; auth errors fail immediately. The
    cost extension of every response is kept in available_points so callers
    can slow down before Shopify starts throttling.
    """

    MAX_RETRIES = 3
    BASE_RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = 15.0,
    ):
        """
        Args:
            shop_domain: Store domain, with or without scheme
            access_token: Admin API access token (shpat_...)
            api_version: Admin API version
            timeout: Per-request timeout in seconds
        """
        self.shop_domain = normalize_domain(shop_domain)
        self.access_token = access_token
        self.timeout = timeout
        self.graphql_url = f"https://{self.shop_domain}/admin/api/{api_version}/graphql.json"
        self.available_points: Optional[float] = None

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self.access_token,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    @property
    def points_low(self) -> bool:
        return self.available_points is not None and self.available_points < LOW_POINTS_THRESHOLD

    def _backoff(self, attempt: int) -> float:
        return self.BASE_RETRY_DELAY * (2 ** attempt)

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Run a query or mutation and return its 'data' object.

        Raises:
            ShopifyAuthError: Token rejected (not retried)
            ShopifyRateLimitError: Still throttled after all attempts
            ShopifyTimeoutError: Every attempt timed out
            ShopifyClientError: Any other failure
        """
        http = await self._get_client()
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        last_error: Optional[ShopifyClientError] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                response = await http.post(self.graphql_url, json=payload)
                return self._parse_response(response)

            except ShopifyAuthError:
                raise

            except ShopifyRateLimitError as e:
                last_error = e
                wait = e.retry_after if e.retry_after is not None else self._backoff(attempt)
                logger.warning(
                    f"{self.shop_domain} throttled, waiting {wait:.1f}s "
                    f"(attempt {attempt + 1}/{self.MAX_RETRIES})"
                )

            except httpx.TimeoutException:
                last_error = ShopifyTimeoutError(
                    f"{self.shop_domain} did not answer within {self.timeout:.0f}s"
                )
                wait = self._backoff(attempt)
                logger.warning(f"{last_error}, retrying in {wait:.1f}s")

            except httpx.RequestError as e:
                last_error = ShopifyClientError(f"Request error: {e}")
                wait = self._backoff(attempt)
                logger.warning(f"Request to {self.shop_domain} failed, retrying in {wait:.1f}s: {e}")

            if attempt < self.MAX_RETRIES - 1:
                await asyncio.sleep(wait)

        raise last_error or ShopifyClientError("Max retries exceeded")

    def _parse_response(self, response: httpx.Response) -> Dict[str, Any]:
        """Map an HTTP response to data or a typed error."""
        status = response.status_code

        if status in (401, 403):
            raise ShopifyAuthError(f"Access token rejected by {self.shop_domain} (HTTP {status})")
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise ShopifyRateLimitError(
                "HTTP 429 Too Many Requests",
                retry_after=float(retry_after) if retry_after else None,
            )
        if status >= 400:
            raise ShopifyClientError(f"HTTP {status} from {self.shop_domain}")

        try:
            body = response.json()
        except ValueError as e:
            raise ShopifyClientError(f"Invalid JSON response: {e}") from e

        self._track_cost(body.get("extensions") or {})

        errors = body.get("errors")
        if errors:
            messages = [errors] if isinstance(errors, str) else [
                e.get("message", str(e)) for e in errors
            ]
            throttled = any(
                "throttl" in msg.lower() for msg in messages
            ) or any(
                isinstance(e, dict) and (e.get("extensions") or {}).get("code") == "THROTTLED"
                for e in (errors if isinstance(errors, list) else [])
            )
            if throttled:
                raise ShopifyRateLimitError(f"GraphQL throttled: {messages}")
            raise ShopifyClientError(f"GraphQL errors: {messages}")

        return body.get("data") or {}

    def _track_cost(self, extensions: Dict[str, Any]) -> None:
        throttle = (extensions.get("cost") or {}).get("throttleStatus") or {}
        available = throttle.get("currentlyAvailable")
        if available is None:
            return
        self.available_points = float(available)
        if self.points_low:
            logger.warning(f"Low rate limit points on {self.shop_domain}: {available:.0f} available")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
