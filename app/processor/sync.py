"""
Price sync engine: preview, execute and single-product sync.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from ..db import (
    PricingPolicy, PolicyOverrides, PriceChange, ProductError, ProductStatus,
    SyncRunLog, TriggerType, UnmatchedEntry, ChangeDirection
)
from ..shopify import ShopifyCatalog, ShopifyClientError, StorefrontProduct
from .history import SyncRunLogger
from .matcher import (
    MatchedProduct, ProductMatcher, UnmatchedProduct, REASON_NO_LINK_OR_SKU
)
from .policy import PolicyStore
from .rules import calculate_change, compute_price, prices_differ, to_decimal

logger = logging.getLogger(__name__)

NO_PRODUCTS_ERROR = "No products found in Shopify store"
REASON_NOT_LINKED = "no link attribute (sku fallback runs during execute)"


class SyncError(Exception):
    """Error during sync process."""
    pass


class ConfigurationError(SyncError):
    """Missing credentials or invalid pricing policy. Nothing was attempted."""
    pass


class CatalogUnavailableError(SyncError):
    """The Shopify catalog could not be read at all."""
    pass


class PreviewSummary(BaseModel):
    increases: int = 0
    decreases: int = 0
    no_change: int = 0
    missing: int = 0


class PreviewResult(BaseModel):
    """Projected price changes for a sample of linked products."""
    success: bool
    error: Optional[str] = None
    total_products: int = 0
    linked_products: int = 0
    unlinked_products: int = 0
    preview_limit: int = 0
    showing_preview: int = 0
    products: List[PriceChange] = Field(default_factory=list)
    missing: List[UnmatchedEntry] = Field(default_factory=list)
    unmatched: List[UnmatchedEntry] = Field(default_factory=list)
    summary: PreviewSummary = Field(default_factory=PreviewSummary)
    policy: Optional[PricingPolicy] = None
    rate_limited: bool = False


class ExecuteResult(BaseModel):
    """Outcome of a full sync run."""
    success: bool = True
    error: Optional[str] = None
    total: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    unmatched: int = 0
    errors: List[ProductError] = Field(default_factory=list)
    changes: List[PriceChange] = Field(default_factory=list)
    unmatched_sample: List[UnmatchedEntry] = Field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False
    log_id: Optional[str] = None


class SingleResult(BaseModel):
    """Outcome of syncing one product."""
    success: bool
    product_id: str
    status: Optional[ProductStatus] = None
    change: Optional[PriceChange] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class LinkResult(BaseModel):
    success: bool
    product_id: str
    supplier_id: str
    error: Optional[str] = None


@dataclass
class _RunTally:
    """Per-run counters shared by execute and sync_one."""
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    unmatched: int = 0
    errors: List[ProductError] = field(default_factory=list)
    changes: List[PriceChange] = field(default_factory=list)
    unmatched_sample: List[UnmatchedEntry] = field(default_factory=list)
    writes: int = 0


def normalize_product_id(product_id: str) -> str:
    """'gid://shopify/Product/123' and '123' both become '123'."""
    return str(product_id).strip().rsplit("/", 1)[-1]


def unmatched_entry(product: StorefrontProduct, reason: str) -> UnmatchedEntry:
    return UnmatchedEntry(
        product_id=product.id,
        title=product.title,
        sku=product.sku,
        reason=reason,
    )


def build_price_change(match: MatchedProduct, policy: PricingPolicy) -> PriceChange:
    """Compute the new price for a matched product and describe the change."""
    product = match.product
    quote = compute_price(match.supplier_price, policy)
    delta, delta_percent, direction = calculate_change(product.current_price, quote.price)

    return PriceChange(
        product_id=product.id,
        title=product.title,
        supplier_id=match.supplier_id,
        supplier_price=float(match.supplier_price),
        previous_price=float(product.current_price),
        new_price=float(quote.price),
        new_compare_at_price=(
            float(quote.compare_at_price) if quote.compare_at_price is not None else None
        ),
        delta=float(delta),
        delta_percent=float(delta_percent),
        direction=direction,
        match_method=match.match_method,
    )


class PriceSyncEngine:
    """
    Reconciles Shopify prices with current CJ prices.

    All network calls are sequential: CJ lookups are paced by the matcher,
    Shopify price writes by update_delay. Per-product failures are collected
    in the result; only configuration errors and an unreadable catalog raise.
    """

    def __init__(
        self,
        catalog: ShopifyCatalog,
        matcher: ProductMatcher,
        policy_store: PolicyStore,
        run_logger: SyncRunLogger,
        update_delay: float = 0.5,
        preview_limit: int = 20,
        unmatched_sample: int = 10,
    ):
        self.catalog = catalog
        self.matcher = matcher
        self.policy_store = policy_store
        self.run_logger = run_logger
        self.update_delay = update_delay
        self.preview_limit = preview_limit
        self.unmatched_sample = unmatched_sample

    # ===== Helpers =====

    async def _resolve_policy(self, overrides: Optional[PolicyOverrides]) -> PricingPolicy:
        try:
            return await self.policy_store.effective(overrides)
        except ValueError as e:
            raise ConfigurationError(f"Invalid pricing policy: {e}") from e

    async def _load_catalog(self) -> List[StorefrontProduct]:
        logger.info("Fetching Shopify products...")
        try:
            return await self.catalog.fetch_all()
        except ShopifyClientError as e:
            logger.error(f"Could not read Shopify catalog: {e}")
            raise CatalogUnavailableError(f"Shopify API error: {e}") from e

    async def _apply_price(
        self,
        match: MatchedProduct,
        policy: PricingPolicy,
        tally: _RunTally,
    ) -> Optional[PriceChange]:
        """
        Write the new price if it differs and record the outcome.

        Returns None when no price could be computed (recorded as failed).
        """
        product = match.product

        try:
            change = build_price_change(match, policy)
        except ValueError as e:
            tally.failed += 1
            tally.errors.append(ProductError(product_id=product.id, title=product.title, error=str(e)))
            logger.warning(f"Cannot price '{product.title}': {e}")
            return None

        if not prices_differ(product.current_price, change.new_price):
            change.status = ProductStatus.SKIPPED
            tally.skipped += 1
            tally.changes.append(change)
            return change

        if tally.writes > 0 and self.update_delay > 0:
            await asyncio.sleep(self.update_delay)
        tally.writes += 1

        try:
            await self.catalog.update_price(
                product,
                price=to_decimal(change.new_price),
                compare_at_price=(
                    to_decimal(change.new_compare_at_price)
                    if change.new_compare_at_price is not None else None
                ),
            )
            change.status = ProductStatus.UPDATED
            tally.updated += 1
            logger.debug(
                f"Updated '{product.title}': {change.previous_price} -> {change.new_price}"
            )
        except ShopifyClientError as e:
            change.status = ProductStatus.FAILED
            change.error = str(e)
            tally.failed += 1
            tally.errors.append(ProductError(product_id=product.id, title=product.title, error=str(e)))
            logger.warning(f"Failed to update '{product.title}': {e}")
        except Exception as e:
            change.status = ProductStatus.FAILED
            change.error = f"Unexpected error: {e}"
            tally.failed += 1
            tally.errors.append(
                ProductError(product_id=product.id, title=product.title, error=change.error)
            )
            logger.exception(f"Unexpected error updating '{product.title}'")

        tally.changes.append(change)
        return change

    def _record_unmatched(self, outcome: UnmatchedProduct, tally: _RunTally) -> None:
        tally.unmatched += 1
        if len(tally.unmatched_sample) < self.unmatched_sample:
            tally.unmatched_sample.append(unmatched_entry(outcome.product, outcome.reason))

    async def _log_run(
        self,
        result: ExecuteResult,
        policy: PricingPolicy,
        started_at: datetime,
        trigger: TriggerType,
        scope: Optional[List[str]],
    ) -> None:
        record = SyncRunLog(
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration=result.duration,
            trigger=trigger,
            scope=scope,
            cancelled=result.cancelled,
            total=result.total,
            updated=result.updated,
            failed=result.failed,
            skipped=result.skipped,
            unmatched=result.unmatched,
            policy=policy,
            changes=result.changes,
            errors=result.errors,
        )
        if await self.run_logger.append(record):
            result.log_id = record.id

    # ===== Operations =====

    async def preview(self, overrides: Optional[PolicyOverrides] = None) -> PreviewResult:
        """
        Dry run over the first linked products. Never writes to Shopify.
        """
        logger.info("Generating price sync preview...")
        policy = await self._resolve_policy(overrides)
        products = await self._load_catalog()

        if not products:
            return PreviewResult(success=False, error=NO_PRODUCTS_ERROR)

        linked = [p for p in products if p.linked_supplier_id]
        unlinked = [p for p in products if not p.linked_supplier_id]
        logger.info(
            f"{len(products)} products, {len(linked)} with CJ link, {len(unlinked)} without"
        )

        sample = linked[:self.preview_limit]
        report = await self.matcher.match_all(sample)

        result = PreviewResult(
            success=True,
            total_products=len(products),
            linked_products=len(linked),
            unlinked_products=len(unlinked),
            preview_limit=self.preview_limit,
            showing_preview=len(sample),
            policy=policy,
        )

        for match in report.matched:
            change = build_price_change(match, policy)
            if change.direction == ChangeDirection.INCREASE:
                result.summary.increases += 1
            elif change.direction == ChangeDirection.DECREASE:
                result.summary.decreases += 1
            else:
                result.summary.no_change += 1
            result.products.append(change)

        for miss in report.unmatched:
            result.summary.missing += 1
            result.missing.append(unmatched_entry(miss.product, miss.reason))

        result.unmatched = [
            unmatched_entry(p, REASON_NOT_LINKED if p.sku else REASON_NO_LINK_OR_SKU)
            for p in unlinked[:self.unmatched_sample]
        ]
        result.rate_limited = self.matcher.rate_state.paused

        logger.info(
            f"Preview: {result.summary.increases} increases, {result.summary.decreases} decreases, "
            f"{result.summary.no_change} unchanged, {result.summary.missing} missing"
        )
        return result

    async def execute(
        self,
        overrides: Optional[PolicyOverrides] = None,
        product_ids: Optional[Iterable[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        trigger: TriggerType = TriggerType.API,
    ) -> ExecuteResult:
        """
        Full sync over every product (or only product_ids, others skipped).

        The cancel event is checked before each product, never in the
        middle of one.
        """
        started_at = datetime.now(timezone.utc)
        clock_start = time.monotonic()
        logger.info("Starting full price sync...")

        policy = await self._resolve_policy(overrides)
        products = await self._load_catalog()

        if not products:
            return ExecuteResult(success=False, error=NO_PRODUCTS_ERROR)

        # An empty list is an empty scope, not the whole store
        scope = None
        if product_ids is not None:
            scope = sorted({normalize_product_id(pid) for pid in product_ids})
        in_scope = [p for p in products if scope is None or p.id in scope]

        tally = _RunTally(skipped=len(products) - len(in_scope))
        cancelled = False

        logger.info(f"Syncing {len(in_scope)} of {len(products)} products...")

        for index, product in enumerate(in_scope, start=1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.warning(f"Sync cancelled after {index - 1}/{len(in_scope)} products")
                break

            outcome = await self.matcher.match_product(product)
            if isinstance(outcome, UnmatchedProduct):
                self._record_unmatched(outcome, tally)
            else:
                await self._apply_price(outcome, policy, tally)

            if index % 100 == 0:
                logger.info(f"Progress: {index}/{len(in_scope)} products")

        result = ExecuteResult(
            success=True,
            total=len(products),
            updated=tally.updated,
            failed=tally.failed,
            skipped=tally.skipped,
            unmatched=tally.unmatched,
            errors=tally.errors,
            changes=tally.changes,
            unmatched_sample=tally.unmatched_sample,
            duration=round(time.monotonic() - clock_start, 2),
            cancelled=cancelled,
        )

        logger.info(
            f"Sync complete: {result.updated} updated, {result.failed} failed, "
            f"{result.skipped} skipped, {result.unmatched} unmatched"
        )

        await self._log_run(result, policy, started_at, trigger, scope)
        return result

    async def sync_one(
        self,
        product_id: str,
        overrides: Optional[PolicyOverrides] = None,
        trigger: TriggerType = TriggerType.API,
    ) -> SingleResult:
        """Sync a single product, fetched directly instead of via the full catalog."""
        started_at = datetime.now(timezone.utc)
        clock_start = time.monotonic()
        short = normalize_product_id(product_id)

        policy = await self._resolve_policy(overrides)

        try:
            product = await self.catalog.get_product(short)
        except ShopifyClientError as e:
            raise CatalogUnavailableError(f"Shopify API error: {e}") from e

        if product is None:
            return SingleResult(success=False, product_id=short, error="Product not found in Shopify store")

        tally = _RunTally()
        outcome = await self.matcher.match_product(product)

        if isinstance(outcome, UnmatchedProduct):
            self._record_unmatched(outcome, tally)
            single = SingleResult(
                success=False,
                product_id=short,
                status=ProductStatus.UNMATCHED,
                reason=outcome.reason,
            )
        else:
            change = await self._apply_price(outcome, policy, tally)
            if change is None:
                single = SingleResult(
                    success=False,
                    product_id=short,
                    status=ProductStatus.FAILED,
                    error=tally.errors[-1].error,
                )
            else:
                single = SingleResult(
                    success=change.status != ProductStatus.FAILED,
                    product_id=short,
                    status=change.status,
                    change=change,
                    error=change.error,
                )

        result = ExecuteResult(
            total=1,
            updated=tally.updated,
            failed=tally.failed,
            skipped=tally.skipped,
            unmatched=tally.unmatched,
            errors=tally.errors,
            changes=tally.changes,
            unmatched_sample=tally.unmatched_sample,
            duration=round(time.monotonic() - clock_start, 2),
        )
        await self._log_run(result, policy, started_at, trigger, [short])
        return single

    async def get_config(self) -> PricingPolicy:
        return await self.policy_store.get()

    async def set_config(self, policy: PricingPolicy) -> PricingPolicy:
        return await self.policy_store.put(policy)

    async def link_product(self, product_id: str, supplier_id: str) -> LinkResult:
        """Write a CJ product id onto a Shopify product's link metafield."""
        product_id = normalize_product_id(product_id)
        supplier_id = str(supplier_id).strip()
        if not product_id or not supplier_id:
            raise ConfigurationError("Both product id and CJ product id are required")

        try:
            await self.catalog.set_supplier_link(product_id, supplier_id)
        except ShopifyClientError as e:
            logger.warning(f"Failed to link product {product_id} to CJ {supplier_id}: {e}")
            return LinkResult(success=False, product_id=product_id, supplier_id=supplier_id, error=str(e))

        logger.info(f"Linked product {product_id} to CJ product {supplier_id}")
        return LinkResult(success=True, product_id=product_id, supplier_id=supplier_id)

