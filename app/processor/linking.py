"""
Manual linking of Shopify products to CJ products.

Flow: upload a Shopify product export, get CJ suggestions by title,
confirm, then write the chosen CJ ids onto the link metafield.
"""

import asyncio
import csv
import gzip
import io
import logging
import re
import zipfile
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..shopify import ShopifyCatalog, ShopifyClientError
from ..supplier import CJClient, SupplierClientError, SupplierRateLimitError

logger = logging.getLogger(__name__)

SEARCH_WORDS = 4
TOP_MATCHES = 3
GOOD_MATCH_SIMILARITY = 50

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


class ExportParseError(ValueError):
    """The uploaded file is not a readable Shopify product export."""
    pass


class ImportedProduct(BaseModel):
    """One product (all variant rows collapsed) from a Shopify export."""
    handle: str
    title: str
    sku: Optional[str] = None
    vendor: Optional[str] = None
    status: str = "active"


class ImportResult(BaseModel):
    total_rows: int
    unique_products: int
    products: List[ImportedProduct]


class SupplierCandidate(BaseModel):
    supplier_id: str
    title: str
    price: Optional[float] = None
    image: Optional[str] = None
    similarity: int = Field(0, ge=0, le=100)


class MatchSuggestion(BaseModel):
    handle: str
    title: str
    sku: Optional[str] = None
    matches: List[SupplierCandidate] = Field(default_factory=list)
    best_match: Optional[SupplierCandidate] = None
    error: Optional[str] = None


class SuggestionReport(BaseModel):
    total: int
    matched: int
    results: List[MatchSuggestion]


class ConfirmedLink(BaseModel):
    handle: str
    supplier_id: str


class LinkOutcome(BaseModel):
    handle: str
    success: bool
    product_id: Optional[str] = None
    error: Optional[str] = None


class LinkReport(BaseModel):
    total: int
    linked: int
    failed: int
    results: List[LinkOutcome]


# ===== CSV import =====

def _decompress(data: bytes, filename: str) -> bytes:
    name = filename.lower()

    if name.endswith(".gz"):
        logger.info("Decompressing .gz export...")
        try:
            return gzip.decompress(data)
        except OSError as e:
            raise ExportParseError(f"Invalid gzip file: {e}") from e

    if name.endswith(".zip"):
        logger.info("Extracting .zip export...")
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                csv_names = [n for n in archive.namelist() if n.lower().endswith(".csv")]
                if not csv_names:
                    raise ExportParseError("No CSV file found in ZIP")
                return archive.read(csv_names[0])
        except zipfile.BadZipFile as e:
            raise ExportParseError(f"Invalid zip file: {e}") from e

    return data


def parse_product_export(data: bytes, filename: str = "products.csv") -> ImportResult:
    """
    Parse a Shopify product export (.csv, .csv.gz or .zip).

    Variant rows are grouped by Handle; the first non-empty Variant SKU of
    a product is kept. Rows without a handle are ignored.
    """
    raw = _decompress(data, filename)
    text = raw.decode("utf-8-sig", errors="replace")
    logger.info(f"Parsing product export ({len(raw) / 1024 / 1024:.2f}MB)...")

    try:
        products, total_rows = _group_by_handle(csv.DictReader(io.StringIO(text)))
    except csv.Error as e:
        raise ExportParseError(f"Malformed CSV: {e}") from e

    logger.info(f"Found {len(products)} unique products in {total_rows} rows")
    return ImportResult(
        total_rows=total_rows,
        unique_products=len(products),
        products=list(products.values()),
    )


def _group_by_handle(reader: csv.DictReader):
    if not reader.fieldnames or "Handle" not in reader.fieldnames:
        raise ExportParseError("CSV has no 'Handle' column")

    products: Dict[str, ImportedProduct] = {}
    total_rows = 0

    for row in reader:
        total_rows += 1
        handle = (row.get("Handle") or "").strip()
        if not handle:
            continue

        sku = (row.get("Variant SKU") or "").strip() or None
        product = products.get(handle)

        if product is None:
            products[handle] = ImportedProduct(
                handle=handle,
                title=(row.get("Title") or "").strip() or handle,
                sku=sku,
                vendor=(row.get("Vendor") or "").strip() or None,
                status=(row.get("Status") or "").strip() or "active",
            )
        elif product.sku is None and sku:
            product.sku = sku

    return products, total_rows


# ===== Title matching =====

def _normalize(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower()).strip()


def title_similarity(a: str, b: str) -> float:
    """
    Token overlap of two titles, from 0.0 to 1.0.

    Tokens of two characters or fewer are ignored.
    """
    s1, s2 = _normalize(a), _normalize(b)
    if s1 == s2:
        return 1.0

    words1 = {w for w in s1.split() if len(w) > 2}
    words2 = {w for w in s2.split() if len(w) > 2}

    total = max(len(words1), len(words2))
    if total == 0:
        return 0.0
    return len(words1 & words2) / total


def search_terms(title: str) -> str:
    """First words of a title, used as the CJ search keyword."""
    return " ".join(title.split()[:SEARCH_WORDS])


async def suggest_matches(
    products: List[ImportedProduct],
    supplier: CJClient,
    delay: float = 0.2,
    top_n: int = TOP_MATCHES,
) -> SuggestionReport:
    """
    Search CJ for each product title and rank candidates by similarity.

    A failed search is recorded on that product and the loop continues.
    Once CJ rate-limits a search, the remaining products are not searched
    and carry that error instead.
    """
    results: List[MatchSuggestion] = []
    rate_limited: Optional[SupplierRateLimitError] = None
    logger.info(f"Matching {len(products)} products to CJ by title...")

    for index, product in enumerate(products, start=1):
        suggestion = MatchSuggestion(handle=product.handle, title=product.title, sku=product.sku)

        if rate_limited is not None:
            suggestion.error = f"Not searched: {rate_limited}"
            results.append(suggestion)
            continue

        try:
            found = await supplier.search_products(search_terms(product.title))
            candidates = sorted(
                (
                    SupplierCandidate(
                        supplier_id=item.id,
                        title=item.title,
                        price=float(item.sell_price) if item.sell_price is not None else None,
                        image=item.image,
                        similarity=round(title_similarity(product.title, item.title) * 100),
                    )
                    for item in found
                ),
                key=lambda c: c.similarity,
                reverse=True,
            )
            suggestion.matches = candidates[:top_n]
            suggestion.best_match = candidates[0] if candidates else None
        except SupplierRateLimitError as e:
            logger.warning(f"CJ rate limit hit while matching, skipping the remaining products: {e}")
            rate_limited = e
            suggestion.error = str(e)
        except SupplierClientError as e:
            logger.warning(f"CJ search failed for '{product.title}': {e}")
            suggestion.error = str(e)

        results.append(suggestion)

        if index % 10 == 0:
            logger.info(f"Matched {index}/{len(products)}...")
        if delay > 0:
            await asyncio.sleep(delay)

    matched = sum(
        1 for r in results
        if r.best_match is not None and r.best_match.similarity >= GOOD_MATCH_SIMILARITY
    )
    logger.info(f"Title matching complete: {matched}/{len(products)} good matches")
    return SuggestionReport(total=len(products), matched=matched, results=results)


# ===== Linking =====

async def link_products(
    links: List[ConfirmedLink],
    catalog: ShopifyCatalog,
    delay: float = 0.2,
) -> LinkReport:
    """Resolve each handle and write its confirmed CJ id. Failures are per link."""
    results: List[LinkOutcome] = []

    for link in links:
        handle = link.handle.strip()
        supplier_id = link.supplier_id.strip()
        if not handle or not supplier_id:
            results.append(LinkOutcome(handle=link.handle, success=False, error="Handle and CJ product id required"))
            continue

        try:
            product = await catalog.find_by_handle(handle)
            if product is None:
                results.append(LinkOutcome(handle=handle, success=False, error="Product not found"))
                continue

            await catalog.set_supplier_link(product.id, supplier_id)
            results.append(LinkOutcome(handle=handle, success=True, product_id=product.id))
        except ShopifyClientError as e:
            logger.warning(f"Failed to link '{handle}': {e}")
            results.append(LinkOutcome(handle=handle, success=False, error=str(e)))

        if delay > 0:
            await asyncio.sleep(delay)

    linked = sum(1 for r in results if r.success)
    logger.info(f"Linking complete: {linked} linked, {len(results) - linked} failed")
    return LinkReport(total=len(links), linked=linked, failed=len(results) - linked, results=results)
