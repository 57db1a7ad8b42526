"""
Shopify API module.
"""

from app.shopify.client import (
    ShopifyClient,
    ShopifyClientError,
    ShopifyAuthError,
    ShopifyRateLimitError,
    ShopifyTimeoutError,
    ShopifyUserError,
)
from app.shopify.catalog import (
    ShopifyCatalog,
    StorefrontProduct,
    PriceUpdateResult,
    to_product_gid,
)
from app.shopify.mutations import PRODUCT_VARIANTS_BULK_UPDATE, METAFIELDS_SET

__all__ = [
    "ShopifyClient",
    "ShopifyClientError",
    "ShopifyAuthError",
    "ShopifyRateLimitError",
    "ShopifyTimeoutError",
    "ShopifyUserError",
    "ShopifyCatalog",
    "StorefrontProduct",
    "PriceUpdateResult",
    "to_product_gid",
    "PRODUCT_VARIANTS_BULK_UPDATE",
    "METAFIELDS_SET",
]
