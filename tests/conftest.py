"""
Shared fixtures and fakes for the storefront and supplier APIs.
"""

from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from app.db import SQLiteDatabase
from app.processor import PolicyStore, ProductMatcher, SupplierRateState, SyncRunLogger
from app.processor.sync import PriceSyncEngine
from app.shopify import ShopifyTimeoutError, StorefrontProduct
from app.supplier import (
    SupplierNotFoundError,
    SupplierProduct,
    SupplierRateLimitError,
)


def make_product(
    product_id: str = "1",
    title: str = "Test Product",
    price: str = "10.00",
    sku: Optional[str] = None,
    link: Optional[str] = None,
    handle: Optional[str] = None,
) -> StorefrontProduct:
    return StorefrontProduct(
        id=product_id,
        graphql_id=f"gid://shopify/Product/{product_id}",
        title=title,
        handle=handle or f"product-{product_id}",
        variant_id=f"9{product_id}",
        variant_graphql_id=f"gid://shopify/ProductVariant/9{product_id}",
        current_price=Decimal(price),
        sku=sku,
        linked_supplier_id=link,
    )


class FakeCatalog:
    """In-memory stand-in for ShopifyCatalog."""

    def __init__(self, products: Optional[List[StorefrontProduct]] = None, failing_ids=()):
        self.products = list(products or [])
        self.failing_ids = set(failing_ids)
        self.updates: List[tuple] = []
        self.links: Dict[str, str] = {}

    async def fetch_all(self):
        return list(self.products)

    async def get_product(self, product_id):
        return next((p for p in self.products if p.id == str(product_id)), None)

    async def find_by_handle(self, handle):
        return next((p for p in self.products if p.handle == handle), None)

    async def update_price(self, product, price, compare_at_price=None):
        if product.id in self.failing_ids:
            raise ShopifyTimeoutError("Request timed out")
        self.updates.append((product.id, price, compare_at_price))
        product.current_price = price
        product.current_compare_at_price = compare_at_price

    async def set_supplier_link(self, product_id, supplier_id):
        self.links[str(product_id)] = supplier_id


class FakeSupplier:
    """In-memory stand-in for CJClient. Counts every request."""

    def __init__(self, prices: Optional[Dict[str, str]] = None, rate_limited: bool = False):
        self.prices = {k: Decimal(v) for k, v in (prices or {}).items()}
        self.rate_limited = rate_limited
        self.calls: List[str] = []
        self.search_results: Dict[str, List[SupplierProduct]] = {}
        self.searches: List[str] = []

    async def get_product(self, product_id):
        self.calls.append(product_id)
        if self.rate_limited:
            raise SupplierRateLimitError("CJ API rate limited: Too Many Requests")
        if product_id not in self.prices:
            raise SupplierNotFoundError(f"CJ returned no data for {product_id}")
        return SupplierProduct(id=product_id, title=f"CJ {product_id}", sell_price=self.prices[product_id])

    async def search_products(self, keyword, page_size=5):
        self.searches.append(keyword)
        return self.search_results.get(keyword, [])


@pytest.fixture
async def db(tmp_path):
    database = SQLiteDatabase(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def rate_state():
    return SupplierRateState()


def build_engine(catalog, supplier, db, rate_state=None, **kwargs) -> PriceSyncEngine:
    matcher = ProductMatcher(supplier, rate_state or SupplierRateState(), catalog=catalog, lookup_delay=0)
    return PriceSyncEngine(
        catalog,
        matcher,
        PolicyStore(db),
        SyncRunLogger(db),
        update_delay=0,
        **kwargs,
    )
