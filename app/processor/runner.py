"""
Runner: builds a sync engine from settings and runs its operations.

Shared by the HTTP routes and the cron script.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, Optional

from ..config import settings
from ..db import PolicyOverrides, SQLiteDatabase, TriggerType, generate_uuid
from ..shopify import ShopifyCatalog, ShopifyClient
from ..supplier import CJClient
from .history import SyncRunLogger
from .matcher import ProductMatcher, SupplierRateState
from .policy import PolicyStore
from .sync import ConfigurationError, ExecuteResult, PreviewResult, PriceSyncEngine, SingleResult

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Storefront and supplier credentials for one run."""
    shop_domain: str
    access_token: str
    cj_token: str


def resolve_credentials(
    shop_domain: Optional[str] = None,
    access_token: Optional[str] = None,
    require_supplier: bool = True,
) -> Credentials:
    """
    Merge per-request credentials with the configured ones.

    Raises:
        ConfigurationError: A required credential is missing
    """
    credentials = Credentials(
        shop_domain=(shop_domain or settings.shopify_store_domain).strip(),
        access_token=(access_token or settings.shopify_access_token).strip(),
        cj_token=settings.cj_api_token.strip(),
    )

    if not credentials.shop_domain or not credentials.access_token:
        raise ConfigurationError("Shopify store domain and access token are required")
    if require_supplier and not credentials.cj_token:
        raise ConfigurationError("CJ API token not configured")

    return credentials


def create_rate_state() -> SupplierRateState:
    return SupplierRateState(
        cache_ttl=settings.price_cache_ttl,
        not_found_ttl=settings.not_found_cache_ttl,
        cooldown=settings.rate_limit_cooldown,
    )


@asynccontextmanager
async def open_catalog(credentials: Credentials) -> AsyncIterator[ShopifyCatalog]:
    async with ShopifyClient(
        credentials.shop_domain,
        credentials.access_token,
        api_version=settings.shopify_api_version,
        timeout=settings.shopify_timeout,
    ) as client:
        yield ShopifyCatalog(
            client,
            link_namespace=settings.supplier_link_namespace,
            link_key=settings.supplier_link_key,
            page_size=settings.catalog_page_size,
            page_delay=settings.catalog_page_delay,
        )


def open_supplier(cj_token: str) -> CJClient:
    return CJClient(
        cj_token,
        base_url=settings.cj_api_base_url,
        timeout=settings.cj_timeout,
    )


@asynccontextmanager
async def build_engine(
    db: SQLiteDatabase,
    rate_state: SupplierRateState,
    credentials: Credentials,
) -> AsyncIterator[PriceSyncEngine]:
    """Wire an engine to live clients; both clients are closed on exit."""
    async with open_catalog(credentials) as catalog, open_supplier(credentials.cj_token) as supplier:
        matcher = ProductMatcher(
            supplier,
            rate_state,
            catalog=catalog,
            lookup_delay=settings.supplier_lookup_delay,
        )
        yield PriceSyncEngine(
            catalog,
            matcher,
            PolicyStore(db),
            SyncRunLogger(db),
            update_delay=settings.storefront_update_delay,
            preview_limit=settings.preview_limit,
            unmatched_sample=settings.preview_unmatched_sample,
        )


class RunRegistry:
    """Cancellation events of the execute runs in progress."""

    def __init__(self):
        self._events: Dict[str, asyncio.Event] = {}

    def start(self) -> tuple:
        run_id = generate_uuid()
        event = asyncio.Event()
        self._events[run_id] = event
        return run_id, event

    def finish(self, run_id: str) -> None:
        self._events.pop(run_id, None)

    @property
    def active(self) -> int:
        return len(self._events)

    def cancel_all(self) -> int:
        """Signal every active run to stop after its current product."""
        for event in self._events.values():
            event.set()
        if self._events:
            logger.warning(f"Cancellation requested for {len(self._events)} running sync(s)")
        return len(self._events)


async def run_preview(
    db: SQLiteDatabase,
    rate_state: SupplierRateState,
    credentials: Credentials,
    overrides: Optional[PolicyOverrides] = None,
) -> PreviewResult:
    async with build_engine(db, rate_state, credentials) as engine:
        return await engine.preview(overrides)


async def run_execute(
    db: SQLiteDatabase,
    rate_state: SupplierRateState,
    registry: RunRegistry,
    credentials: Credentials,
    overrides: Optional[PolicyOverrides] = None,
    product_ids: Optional[Iterable[str]] = None,
    trigger: TriggerType = TriggerType.API,
) -> ExecuteResult:
    """Run a full sync, registered for cancellation while it runs."""
    run_id, cancel_event = registry.start()
    try:
        async with build_engine(db, rate_state, credentials) as engine:
            return await engine.execute(
                overrides=overrides,
                product_ids=product_ids,
                cancel_event=cancel_event,
                trigger=trigger,
            )
    finally:
        registry.finish(run_id)


async def run_sync_one(
    db: SQLiteDatabase,
    rate_state: SupplierRateState,
    credentials: Credentials,
    product_id: str,
    overrides: Optional[PolicyOverrides] = None,
    trigger: TriggerType = TriggerType.API,
) -> SingleResult:
    async with build_engine(db, rate_state, credentials) as engine:
        return await engine.sync_one(product_id, overrides=overrides, trigger=trigger)
