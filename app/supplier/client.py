"""
CJ Dropshipping REST API client.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

# CJ answers quota exhaustion with HTTP 200 and this business code
RATE_LIMIT_CODE = 1600200

_PRICE_PATTERN = re.compile(r"\d+(?:\.\d+)?")


class SupplierClientError(Exception):
    """Base exception for CJ client errors."""
    pass


class SupplierAuthError(SupplierClientError):
    """Token missing, invalid or expired."""
    pass


class SupplierNotFoundError(SupplierClientError):
    """No CJ product exists for the requested id."""
    pass


class SupplierTimeoutError(SupplierClientError):
    """Request did not complete within the configured timeout."""
    pass


class SupplierRateLimitError(SupplierClientError):
    """CJ quota exhausted (business code 1600200 or HTTP 429)."""
    pass


@dataclass
class SupplierProduct:
    """A CJ product as returned by the product endpoints."""

    id: str
    title: str
    sell_price: Optional[Decimal]
    image: Optional[str] = None


def parse_sell_price(value: Any) -> Optional[Decimal]:
    """
    Parse a CJ sellPrice.

    List results may carry a range such as "2.50 -- 3.10"; the lower
    bound is used.
    """
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        price = Decimal(str(value))
    else:
        match = _PRICE_PATTERN.search(str(value))
        if not match:
            return None
        try:
            price = Decimal(match.group(0))
        except InvalidOperation:
            return None
    return price if price > 0 else None


def parse_supplier_product(data: Dict[str, Any]) -> SupplierProduct:
    """Build a SupplierProduct from a CJ product payload."""
    return SupplierProduct(
        id=str(data.get("pid") or data.get("id") or ""),
        title=data.get("productNameEn") or data.get("productName") or "",
        sell_price=parse_sell_price(data.get("sellPrice")),
        image=data.get("productImage"),
    )


def _is_rate_limited(body: Dict[str, Any]) -> bool:
    message = str(body.get("message") or "")
    return body.get("code") == RATE_LIMIT_CODE or "too many requests" in message.lower()


class CJClient:
    """
    Async HTTP client for the CJ Dropshipping product API.

    No retries: CJ enforces a strict daily quota shared by all callers,
    so every failure is reported to the caller as-is.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://developers.cjdropshipping.com/api2.0/v1",
        timeout: float = 10.0,
    ):
        """
        Initialize CJ client.

        Args:
            access_token: CJ-Access-Token value
            base_url: API base URL
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"CJ-Access-Token": self.access_token},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        GET a CJ endpoint and return the decoded envelope.

        Raises:
            SupplierRateLimitError: Quota exhausted
            SupplierAuthError: Token rejected
            SupplierTimeoutError: Request timed out
            SupplierClientError: Any other transport failure
        """
        client = await self._get_client()

        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise SupplierTimeoutError(f"CJ request timed out after {self.timeout:.0f}s") from e
        except httpx.RequestError as e:
            raise SupplierClientError(f"CJ request error: {e}") from e

        if response.status_code == 429:
            raise SupplierRateLimitError("CJ API rate limited (HTTP 429)")

        if response.status_code == 401:
            raise SupplierAuthError("CJ access token rejected")

        if response.status_code >= 400:
            raise SupplierClientError(f"CJ API returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise SupplierClientError(f"Invalid JSON from CJ: {e}") from e

        if _is_rate_limited(body):
            raise SupplierRateLimitError(f"CJ API rate limited: {body.get('message')}")

        return body

    async def get_product(self, product_id: str) -> SupplierProduct:
        """
        Fetch a CJ product by id.

        Raises:
            SupplierNotFoundError: CJ has no product (or no price) for the id
            SupplierClientError: See _get
        """
        body = await self._get("/product/query", {"pid": product_id})

        data = body.get("data")
        if not body.get("result") or not data:
            raise SupplierNotFoundError(
                f"CJ returned no data for {product_id}: "
                f"code={body.get('code')}, message={body.get('message')}"
            )

        product = parse_supplier_product(data)
        if not product.id:
            product.id = str(product_id)
        return product

    async def search_products(self, keyword: str, page_size: int = 5) -> List[SupplierProduct]:
        """Search CJ products by English name."""
        body = await self._get(
            "/product/list",
            {"productNameEn": keyword, "pageNum": 1, "pageSize": page_size},
        )

        if not body.get("result"):
            logger.warning(f"CJ search for '{keyword}' failed: {body.get('message')}")
            return []

        items = (body.get("data") or {}).get("list") or []
        return [parse_supplier_product(item) for item in items]

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
