"""
Storefront catalog access on top of the GraphQL client.

Reads products page by page together with the CJ link metafield and
writes prices and links back.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Dict, List, Optional

from app.shopify.client import ShopifyClient, ShopifyClientError, raise_for_user_errors
from app.shopify.mutations import METAFIELDS_SET, PRODUCT_VARIANTS_BULK_UPDATE
from app.shopify.queries import (
    PRODUCTS_PAGE_QUERY,
    PRODUCT_BY_HANDLE_QUERY,
    PRODUCT_BY_ID_QUERY,
    SHOP_QUERY,
)

logger = logging.getLogger(__name__)

PRODUCT_GID_PREFIX = "gid://shopify/Product/"
VARIANT_GID_PREFIX = "gid://shopify/ProductVariant/"
LOW_POINTS_PAGE_DELAY = 2.0  # seconds, lets the leaky bucket refill


@dataclass
class StorefrontProduct:
    """A Shopify product reduced to its single priced variant."""

    id: str
    graphql_id: str
    title: str
    handle: str
    variant_id: Optional[str]
    variant_graphql_id: Optional[str]
    current_price: Decimal
    current_compare_at_price: Optional[Decimal] = None
    sku: Optional[str] = None
    linked_supplier_id: Optional[str] = None
    status: Optional[str] = None


@dataclass
class PriceUpdateResult:
    """Prices as reported back by Shopify after an update."""

    price: Decimal
    compare_at_price: Optional[Decimal]


def to_product_gid(product_id: str) -> str:
    """Accept a numeric id or a GID and return the GID."""
    product_id = str(product_id).strip()
    if product_id.startswith("gid://"):
        return product_id
    return f"{PRODUCT_GID_PREFIX}{product_id}"


def short_id(gid: Optional[str]) -> Optional[str]:
    """Return the numeric tail of a GID."""
    if not gid:
        return None
    return gid.rsplit("/", 1)[-1]


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_product(node: Dict[str, Any]) -> StorefrontProduct:
    """Build a StorefrontProduct from a GraphQL product node."""
    edges = (node.get("variants") or {}).get("edges") or []
    variant = edges[0]["node"] if edges else {}

    link = (node.get("supplierLink") or {}).get("value")
    link = link.strip() if isinstance(link, str) and link.strip() else None

    sku = variant.get("sku")
    sku = sku.strip() if isinstance(sku, str) and sku.strip() else None

    return StorefrontProduct(
        id=short_id(node["id"]),
        graphql_id=node["id"],
        title=node.get("title") or "",
        handle=node.get("handle") or "",
        status=node.get("status"),
        variant_id=short_id(variant.get("id")),
        variant_graphql_id=variant.get("id"),
        sku=sku,
        current_price=_parse_decimal(variant.get("price")) or Decimal("0"),
        current_compare_at_price=_parse_decimal(variant.get("compareAtPrice")),
        linked_supplier_id=link,
    )


class ShopifyCatalog:
    """
    Product catalog operations used by the price sync.
    """

    def __init__(
        self,
        client: ShopifyClient,
        link_namespace: str = "custom",
        link_key: str = "cj_product_id",
        page_size: int = 100,
        page_delay: float = 0.2,
    ):
        """
        Initialize catalog.

        Args:
            client: Shopify GraphQL client
            link_namespace: Metafield namespace of the CJ link
            link_key: Metafield key of the CJ link
            page_size: Products per page
            page_delay: Pause between page requests
        """
        self.client = client
        self.link_namespace = link_namespace
        self.link_key = link_key
        self.page_size = page_size
        self.page_delay = page_delay

    @property
    def _link_variables(self) -> Dict[str, str]:
        return {"namespace": self.link_namespace, "key": self.link_key}

    async def iter_pages(self) -> AsyncIterator[List[StorefrontProduct]]:
        """
        Yield the catalog one page at a time until exhausted.

        Every call starts again from the first page.
        """
        cursor: Optional[str] = None
        fetched = 0

        while True:
            data = await self.client.execute(
                PRODUCTS_PAGE_QUERY,
                variables={"first": self.page_size, "cursor": cursor, **self._link_variables},
            )
            products = data.get("products")
            if not products:
                logger.error("No products data in response")
                return

            page = [parse_product(edge["node"]) for edge in products.get("edges", [])]
            fetched += len(page)
            logger.debug(f"Fetched {fetched} products...")

            if page:
                yield page

            page_info = products.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return
            cursor = page_info.get("endCursor")

            if self.client.points_low:
                logger.info(f"Query budget low, pausing {LOW_POINTS_PAGE_DELAY:.0f}s before next page")
                await asyncio.sleep(LOW_POINTS_PAGE_DELAY)
            elif self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

    async def fetch_all(self) -> List[StorefrontProduct]:
        """Fetch the whole catalog."""
        products: List[StorefrontProduct] = []
        async for page in self.iter_pages():
            products.extend(page)
        logger.info(f"Total products fetched: {len(products)}")
        return products

    async def get_product(self, product_id: str) -> Optional[StorefrontProduct]:
        """Fetch one product by numeric id or GID."""
        data = await self.client.execute(
            PRODUCT_BY_ID_QUERY,
            variables={"id": to_product_gid(product_id), **self._link_variables},
        )
        node = data.get("product")
        return parse_product(node) if node else None

    async def get_shop(self) -> Dict[str, Any]:
        """Name, domain and currency of the store. Used to check credentials."""
        data = await self.client.execute(SHOP_QUERY)
        return data.get("shop") or {}

    async def find_by_handle(self, handle: str) -> Optional[StorefrontProduct]:
        """Fetch one product by its URL handle."""
        data = await self.client.execute(
            PRODUCT_BY_HANDLE_QUERY,
            variables={"handle": handle, **self._link_variables},
        )
        node = data.get("productByHandle")
        return parse_product(node) if node else None

    async def update_price(
        self,
        product: StorefrontProduct,
        price: Decimal,
        compare_at_price: Optional[Decimal] = None,
    ) -> PriceUpdateResult:
        """
        Set the price (and compare-at price) of the product's variant.

        Setting a price that is already applied is accepted by Shopify and
        leaves the product unchanged, so the call is safe to retry.

        Raises:
            ShopifyUserError: Shopify rejected the values (field errors)
            ShopifyClientError: Transport or API failure
        """
        if not product.variant_graphql_id:
            raise ShopifyClientError(f"Product {product.id} has no variant")

        variant: Dict[str, Any] = {"id": product.variant_graphql_id, "price": str(price)}
        if compare_at_price is not None:
            variant["compareAtPrice"] = str(compare_at_price)

        data = await self.client.execute(
            PRODUCT_VARIANTS_BULK_UPDATE,
            variables={"productId": product.graphql_id, "variants": [variant]},
        )

        result = data.get("productVariantsBulkUpdate") or {}
        raise_for_user_errors(result)

        updated = (result.get("productVariants") or [{}])[0] or {}
        return PriceUpdateResult(
            price=_parse_decimal(updated.get("price")) or price,
            compare_at_price=_parse_decimal(updated.get("compareAtPrice")),
        )

    async def set_supplier_link(self, product_id: str, supplier_id: str) -> None:
        """
        Write the CJ product id onto the product's link metafield.

        Raises:
            ShopifyUserError: Shopify rejected the metafield
            ShopifyClientError: Transport or API failure
        """
        data = await self.client.execute(
            METAFIELDS_SET,
            variables={
                "metafields": [{
                    "ownerId": to_product_gid(product_id),
                    "namespace": self.link_namespace,
                    "key": self.link_key,
                    "value": str(supplier_id),
                    "type": "single_line_text_field",
                }]
            },
        )
        raise_for_user_errors(data.get("metafieldsSet"))
