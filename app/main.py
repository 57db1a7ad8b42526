"""
CJ Price Sync - Main Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .dependencies import init_dependencies, close_dependencies
from .processor import CatalogUnavailableError, ConfigurationError
from .routes import auth_router, sync_router, logs_router, link_router, connection_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting CJ Price Sync (database: {settings.database_path})")
    await init_dependencies()
    if not settings.shopify_store_domain or not settings.cj_api_token:
        logger.warning("Shopify or CJ credentials not configured in environment")
    yield
    logger.info("Shutting down, cancelling running syncs...")
    await close_dependencies()


app = FastAPI(
    title="CJ Price Sync",
    description="Keep Shopify prices in line with CJ Dropshipping supplier prices",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(auth_router)
app.include_router(sync_router)
app.include_router(logs_router)
app.include_router(link_router)
app.include_router(connection_router)


@app.exception_handler(ConfigurationError)
async def configuration_error(request: Request, exc: ConfigurationError):
    """Nothing was attempted: missing credentials or an invalid policy."""
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse({"success": False, "error": str(exc)}, status_code=400)


@app.exception_handler(CatalogUnavailableError)
async def catalog_unavailable(request: Request, exc: CatalogUnavailableError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse({"success": False, "error": str(exc)}, status_code=502)


@app.get("/health")
async def health():
    """Health check endpoint (no auth required)."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
