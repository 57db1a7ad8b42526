"""
CJ Dropshipping supplier module.
"""

from app.supplier.client import (
    CJClient,
    SupplierProduct,
    SupplierClientError,
    SupplierAuthError,
    SupplierNotFoundError,
    SupplierRateLimitError,
    SupplierTimeoutError,
    parse_sell_price,
)

__all__ = [
    "CJClient",
    "SupplierProduct",
    "SupplierClientError",
    "SupplierAuthError",
    "SupplierNotFoundError",
    "SupplierRateLimitError",
    "SupplierTimeoutError",
    "parse_sell_price",
]
