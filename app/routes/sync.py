"""
Price sync API routes.

ConfigurationError (400) and CatalogUnavailableError (502) are turned
into responses by the handlers in app.main.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..db import PricingPolicy, PolicyOverrides, TriggerType
from ..dependencies import get_db, get_rate_state, get_run_registry, require_auth
from ..processor import (
    ExecuteResult,
    PolicyStore,
    PreviewResult,
    SingleResult,
    resolve_credentials,
    run_execute,
    run_preview,
    run_sync_one,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync-prices", dependencies=[Depends(require_auth)])


class SyncRequest(BaseModel):
    """Optional policy overrides and per-request Shopify credentials."""
    options: Optional[PolicyOverrides] = None
    shopify_store: Optional[str] = None
    shopify_token: Optional[str] = None


class ExecuteRequest(SyncRequest):
    product_ids: Optional[List[str]] = None


@router.post("/preview", response_model=PreviewResult)
async def preview_sync(body: Optional[SyncRequest] = None):
    """Projected changes for the first linked products. Writes nothing."""
    body = body or SyncRequest()
    credentials = resolve_credentials(body.shopify_store, body.shopify_token)
    return await run_preview(get_db(), get_rate_state(), credentials, body.options)


@router.post("", response_model=ExecuteResult)
async def execute_sync(body: Optional[ExecuteRequest] = None):
    """Full sync. Responds when the run has finished or was cancelled."""
    body = body or ExecuteRequest()
    credentials = resolve_credentials(body.shopify_store, body.shopify_token)
    return await run_execute(
        get_db(),
        get_rate_state(),
        get_run_registry(),
        credentials,
        overrides=body.options,
        product_ids=body.product_ids,
        trigger=TriggerType.API,
    )


@router.post("/product/{product_id}", response_model=SingleResult)
async def sync_single_product(product_id: str, body: Optional[SyncRequest] = None):
    body = body or SyncRequest()
    credentials = resolve_credentials(body.shopify_store, body.shopify_token)
    return await run_sync_one(
        get_db(), get_rate_state(), credentials, product_id, overrides=body.options
    )


@router.post("/cancel")
async def cancel_sync():
    """Stop running syncs after the product each one is on."""
    cancelled = get_run_registry().cancel_all()
    return {"success": True, "cancelled": cancelled}


@router.get("/status")
async def get_sync_status():
    return {
        "running_syncs": get_run_registry().active,
        "rate_limited": get_rate_state().paused,
    }


@router.get("/config", response_model=PricingPolicy)
async def get_config():
    return await PolicyStore(get_db()).get()


@router.post("/config", response_model=PricingPolicy)
async def set_config(policy: PricingPolicy):
    """Replace the stored pricing policy. Returns it with its new version."""
    saved = await PolicyStore(get_db()).put(policy)
    logger.info(
        f"Pricing policy updated: markup x{saved.markup_multiplier}, "
        f"min {saved.min_price}, max {saved.max_price}, ending {saved.round_to}"
    )
    return saved
