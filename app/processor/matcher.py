"""
Matches Shopify products to CJ products and looks up CJ prices.

Matching order:
1. CJ product id stored in the link metafield
2. SKU used as a CJ product id
Title similarity is never used here; see linking.py for the manual flow.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..db.models import MatchMethod
from ..shopify import ShopifyCatalog, ShopifyClientError, StorefrontProduct
from ..supplier import (
    CJClient,
    SupplierClientError,
    SupplierNotFoundError,
    SupplierRateLimitError,
)

logger = logging.getLogger(__name__)

REASON_SUPPLIER_NOT_FOUND = "supplier product not found"
REASON_SKU_NOT_SUPPLIER_ID = "sku not a valid supplier id"
REASON_NO_LINK_OR_SKU = "no link or sku"

_MISS = object()


class SupplierRateState:
    """
    Process-wide CJ price cache and rate-limit cool-down.

    Shared by every preview and execute run so that CJ quota is not spent
    twice on the same id. Guarded by a lock; a lost race costs at most one
    extra CJ request.
    """

    def __init__(
        self,
        cache_ttl: float = 24 * 60 * 60,
        not_found_ttl: float = 60 * 60,
        cooldown: float = 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache_ttl = cache_ttl
        self.not_found_ttl = not_found_ttl
        self.cooldown = cooldown
        self.clock = clock

        self._lock = threading.Lock()
        self._prices: Dict[str, Tuple[Optional[Decimal], float]] = {}
        self._paused_until: Optional[float] = None

    def get_cached(self, supplier_id: str):
        """Return the cached price (None for a cached miss) or _MISS."""
        with self._lock:
            entry = self._prices.get(supplier_id)
            if entry is None:
                return _MISS
            price, expires_at = entry
            if self.clock() >= expires_at:
                del self._prices[supplier_id]
                return _MISS
            return price

    def remember(self, supplier_id: str, price: Optional[Decimal]) -> None:
        ttl = self.cache_ttl if price is not None else self.not_found_ttl
        with self._lock:
            self._prices[supplier_id] = (price, self.clock() + ttl)

    @property
    def paused(self) -> bool:
        with self._lock:
            if self._paused_until is None:
                return False
            if self.clock() >= self._paused_until:
                self._paused_until = None
                logger.info("CJ rate-limit cool-down over, resuming lookups")
                return False
            return True

    def pause(self) -> bool:
        """Enter the cool-down. Returns True only for the transition."""
        with self._lock:
            now = self.clock()
            if self._paused_until is not None and now < self._paused_until:
                return False
            self._paused_until = now + self.cooldown
            return True

    def clear(self) -> None:
        with self._lock:
            self._prices.clear()
            self._paused_until = None


@dataclass
class MatchedProduct:
    """A Shopify product with its current CJ price."""

    product: StorefrontProduct
    supplier_id: str
    supplier_price: Decimal
    match_method: MatchMethod


@dataclass
class UnmatchedProduct:
    """A Shopify product that could not be priced, with the reason."""

    product: StorefrontProduct
    reason: str


@dataclass
class MatchReport:
    matched: List[MatchedProduct] = field(default_factory=list)
    unmatched: List[UnmatchedProduct] = field(default_factory=list)


class ProductMatcher:
    """
    Resolves Shopify products to CJ prices, one CJ request at a time.
    """

    def __init__(
        self,
        supplier: CJClient,
        rate_state: SupplierRateState,
        catalog: Optional[ShopifyCatalog] = None,
        lookup_delay: float = 0.3,
    ):
        """
        Initialize matcher.

        Args:
            supplier: CJ client
            rate_state: Shared cache and cool-down state
            catalog: Used to store ids resolved through the SKU fallback
            lookup_delay: Pause after every CJ request
        """
        self.supplier = supplier
        self.rate_state = rate_state
        self.catalog = catalog
        self.lookup_delay = lookup_delay
        self._error_logged = False

    async def lookup_price(self, supplier_id: str) -> Optional[Decimal]:
        """
        Get the current CJ price for a product id.

        Returns None when the product is unknown, has no price, the request
        failed, or lookups are paused by the rate-limit cool-down.
        """
        cached = self.rate_state.get_cached(supplier_id)
        if cached is not _MISS:
            return cached

        if self.rate_state.paused:
            return None

        try:
            product = await self.supplier.get_product(supplier_id)
            price = product.sell_price
            self.rate_state.remember(supplier_id, price)
            self._error_logged = False
            return price

        except SupplierRateLimitError as e:
            if self.rate_state.pause():
                logger.warning(
                    f"CJ API rate limited, pausing lookups for "
                    f"{self.rate_state.cooldown:.0f}s: {e}"
                )
            return None

        except SupplierNotFoundError as e:
            self.rate_state.remember(supplier_id, None)
            self._log_failure(supplier_id, e)
            return None

        except SupplierClientError as e:
            # Transient: not cached, the next run may succeed
            self._log_failure(supplier_id, e)
            return None

        finally:
            if self.lookup_delay > 0:
                await asyncio.sleep(self.lookup_delay)

    def _log_failure(self, supplier_id: str, error: Exception) -> None:
        if not self._error_logged:
            logger.warning(f"CJ lookup failed for {supplier_id}: {error}")
            self._error_logged = True
        else:
            logger.debug(f"CJ lookup failed for {supplier_id}: {error}")

    async def match_product(self, product: StorefrontProduct) -> Union[MatchedProduct, UnmatchedProduct]:
        """Classify one product. Exactly one branch applies."""
        if product.linked_supplier_id:
            price = await self.lookup_price(product.linked_supplier_id)
            if price is None:
                return UnmatchedProduct(product, REASON_SUPPLIER_NOT_FOUND)
            return MatchedProduct(
                product=product,
                supplier_id=product.linked_supplier_id,
                supplier_price=price,
                match_method=MatchMethod.LINK_ATTRIBUTE,
            )

        if product.sku:
            price = await self.lookup_price(product.sku)
            if price is None:
                return UnmatchedProduct(product, REASON_SKU_NOT_SUPPLIER_ID)
            await self._remember_link(product, product.sku)
            return MatchedProduct(
                product=product,
                supplier_id=product.sku,
                supplier_price=price,
                match_method=MatchMethod.SKU_FALLBACK,
            )

        return UnmatchedProduct(product, REASON_NO_LINK_OR_SKU)

    async def _remember_link(self, product: StorefrontProduct, supplier_id: str) -> None:
        """Store an id found through the SKU so the next run uses the link."""
        if self.catalog is None:
            return
        try:
            await self.catalog.set_supplier_link(product.id, supplier_id)
            product.linked_supplier_id = supplier_id
            logger.info(f"Linked '{product.title}' to CJ product {supplier_id} (from SKU)")
        except ShopifyClientError as e:
            logger.warning(f"Could not store CJ link for '{product.title}': {e}")

    async def match_all(self, products: List[StorefrontProduct]) -> MatchReport:
        """
        Split products into matched and unmatched.

        Every input product ends up in exactly one of the two lists.
        """
        report = MatchReport()

        with_link = sum(1 for p in products if p.linked_supplier_id)
        with_sku = sum(1 for p in products if not p.linked_supplier_id and p.sku)
        logger.info(
            f"Matching {len(products)} products: {with_link} with CJ link, "
            f"{with_sku} with SKU only, {len(products) - with_link - with_sku} with neither"
        )

        for product in products:
            outcome = await self.match_product(product)
            if isinstance(outcome, MatchedProduct):
                report.matched.append(outcome)
            else:
                report.unmatched.append(outcome)

        logger.info(
            f"Matching complete: {len(report.matched)} matched, "
            f"{len(report.unmatched)} unmatched"
        )
        return report
