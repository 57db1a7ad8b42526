"""
Product linking routes: single link, CSV import, title matching, bulk link.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from ..config import settings
from ..dependencies import get_db, get_rate_state, require_auth
from ..processor import LinkResult, build_engine, resolve_credentials
from ..processor.linking import (
    ConfirmedLink,
    ExportParseError,
    ImportedProduct,
    ImportResult,
    LinkReport,
    SuggestionReport,
    link_products,
    parse_product_export,
    suggest_matches,
)
from ..processor.runner import open_catalog, open_supplier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
ALLOWED_EXTENSIONS = (".csv", ".gz", ".zip")


class SetLinkRequest(BaseModel):
    product_id: str
    cj_product_id: str
    shopify_store: Optional[str] = None
    shopify_token: Optional[str] = None


class MatchRequest(BaseModel):
    products: List[ImportedProduct]


class LinkRequest(BaseModel):
    links: List[ConfirmedLink]
    shopify_store: Optional[str] = None
    shopify_token: Optional[str] = None


@router.post("/set-cj-metafield", response_model=LinkResult)
async def set_cj_metafield(body: SetLinkRequest):
    """Store a CJ product id on one Shopify product."""
    credentials = resolve_credentials(body.shopify_store, body.shopify_token, require_supplier=False)
    async with build_engine(get_db(), get_rate_state(), credentials) as engine:
        return await engine.link_product(body.product_id, body.cj_product_id)


@router.post("/import-csv", response_model=ImportResult)
async def import_csv(file: UploadFile = File(...)):
    """Parse an uploaded Shopify product export."""
    filename = file.filename or ""
    if not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Upload a .csv, .csv.gz or .zip file")

    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        return parse_product_export(data, filename)
    except ExportParseError as e:
        logger.warning(f"Rejected product export '{filename}': {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/match-products", response_model=SuggestionReport)
async def match_products(body: MatchRequest):
    """Suggest CJ products for each imported product by title."""
    if not settings.cj_api_token:
        raise HTTPException(status_code=400, detail="CJ API token not configured")

    async with open_supplier(settings.cj_api_token) as supplier:
        return await suggest_matches(body.products, supplier, delay=settings.link_delay)


@router.post("/link-products", response_model=LinkReport)
async def link_confirmed_products(body: LinkRequest):
    """Write confirmed CJ ids onto the matching Shopify products."""
    credentials = resolve_credentials(body.shopify_store, body.shopify_token, require_supplier=False)
    async with open_catalog(credentials) as catalog:
        return await link_products(body.links, catalog, delay=settings.link_delay)
