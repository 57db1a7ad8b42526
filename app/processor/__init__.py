"""
Processor package for price sync operations.
"""

from .rules import (
    PriceQuote,
    compute_price,
    round_to_ending,
    calculate_change,
    prices_differ,
    format_price,
)
from .matcher import (
    ProductMatcher,
    SupplierRateState,
    MatchedProduct,
    UnmatchedProduct,
    MatchReport,
)
from .policy import PolicyStore
from .history import SyncRunLogger
from .sync import (
    PriceSyncEngine,
    PreviewResult,
    ExecuteResult,
    SingleResult,
    LinkResult,
    SyncError,
    ConfigurationError,
    CatalogUnavailableError,
)
from .runner import (
    Credentials,
    RunRegistry,
    resolve_credentials,
    create_rate_state,
    build_engine,
    run_preview,
    run_execute,
    run_sync_one,
)

__all__ = [
    "PriceQuote",
    "compute_price",
    "round_to_ending",
    "calculate_change",
    "prices_differ",
    "format_price",
    "ProductMatcher",
    "SupplierRateState",
    "MatchedProduct",
    "UnmatchedProduct",
    "MatchReport",
    "PolicyStore",
    "SyncRunLogger",
    "PriceSyncEngine",
    "PreviewResult",
    "ExecuteResult",
    "SingleResult",
    "LinkResult",
    "SyncError",
    "ConfigurationError",
    "CatalogUnavailableError",
    "Credentials",
    "RunRegistry",
    "resolve_credentials",
    "create_rate_state",
    "build_engine",
    "run_preview",
    "run_execute",
    "run_sync_one",
]
