"""
Storefront connection check for the settings page.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..dependencies import require_auth
from ..processor import resolve_credentials
from ..processor.runner import open_catalog
from ..shopify import ShopifyAuthError, ShopifyClientError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])


class ConnectionRequest(BaseModel):
    shopify_store: Optional[str] = None
    shopify_token: Optional[str] = None


@router.post("/test-connection")
async def check_connection(body: Optional[ConnectionRequest] = None):
    """
    Run one cheap query against the store with the given (or configured)
    credentials. A rejected token or an unreachable store answers 400 with
    success false.
    """
    body = body or ConnectionRequest()
    credentials = resolve_credentials(body.shopify_store, body.shopify_token, require_supplier=False)

    try:
        async with open_catalog(credentials) as catalog:
            shop = await catalog.get_shop()
    except ShopifyAuthError as e:
        logger.warning(f"Connection test for {credentials.shop_domain} rejected: {e}")
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)
    except ShopifyClientError as e:
        logger.error(f"Connection test for {credentials.shop_domain} failed: {e}")
        return JSONResponse({"success": False, "error": str(e)}, status_code=400)

    logger.info(f"Connected to {shop.get('name') or credentials.shop_domain}")
    return {"success": True, "shop": shop}
