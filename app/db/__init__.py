"""
Database package - SQLite document store.
"""

from .models import (
    PricingPolicy, PolicyOverrides, PriceChange, ProductError, UnmatchedEntry,
    SyncRunLog, ChangeDirection, MatchMethod, ProductStatus, TriggerType,
    generate_uuid
)
from .sqlite import SQLiteDatabase

__all__ = [
    "SQLiteDatabase",
    "PricingPolicy",
    "PolicyOverrides",
    "PriceChange",
    "ProductError",
    "UnmatchedEntry",
    "SyncRunLog",
    "ChangeDirection",
    "MatchMethod",
    "ProductStatus",
    "TriggerType",
    "generate_uuid",
]
