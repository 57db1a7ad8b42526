"""
Pydantic models for persisted documents.
The pricing policy and the daily sync logs are stored as JSON documents.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
import uuid


class ChangeDirection(str, Enum):
    """Direction of a computed price change."""
    INCREASE = "increase"
    DECREASE = "decrease"
    NONE = "none"


class MatchMethod(str, Enum):
    """How a Shopify product was tied to its CJ product."""
    LINK_ATTRIBUTE = "link-attribute"
    SKU_FALLBACK = "sku-fallback"


class ProductStatus(str, Enum):
    """Terminal state of a product within an execute run."""
    UPDATED = "updated"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNMATCHED = "unmatched"


class TriggerType(str, Enum):
    """What triggered the sync."""
    API = "api"
    CLI = "cli"
    SCHEDULER = "scheduler"


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


# Policy fields where None is a real value (no bound, no rounding)
NULLABLE_FIELDS = ("min_price", "max_price", "round_to")


class PricingPolicy(BaseModel):
    """Active pricing configuration, read by every price computation."""
    markup_multiplier: float = Field(default=2.0, ge=1)
    min_price: Optional[float] = Field(default=19.99, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    round_to: Optional[float] = Field(default=0.95, ge=0, lt=1)  # price ending, e.g. X.95
    show_compare_at: bool = False
    compare_at_markup: float = Field(default=1.3, ge=1)

    version: int = 0
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "PricingPolicy":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot be greater than max_price")
        return self

    def apply(self, overrides: Optional["PolicyOverrides"]) -> "PricingPolicy":
        """Return a copy with call-site overrides applied on top."""
        if overrides is None:
            return self
        changes = {
            field: value
            for field, value in overrides.model_dump(exclude_unset=True).items()
            # null means "use the stored value" for fields that cannot be cleared
            if value is not None or field in NULLABLE_FIELDS
        }
        if not changes:
            return self
        # Re-validate so overrides obey the same rules as the stored policy
        return PricingPolicy.model_validate({**self.model_dump(), **changes})


class PolicyOverrides(BaseModel):
    """Per-call pricing options. Only fields that are explicitly sent apply."""
    markup_multiplier: Optional[float] = Field(default=None, ge=1)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    round_to: Optional[float] = Field(default=None, ge=0, lt=1)
    show_compare_at: Optional[bool] = None
    compare_at_markup: Optional[float] = Field(default=None, ge=1)


class PriceChange(BaseModel):
    """A computed price change for one product."""
    product_id: str
    title: str
    supplier_id: str
    supplier_price: float
    previous_price: float
    new_price: float
    new_compare_at_price: Optional[float] = None
    delta: float
    delta_percent: float
    direction: ChangeDirection
    match_method: MatchMethod
    status: Optional[ProductStatus] = None
    error: Optional[str] = None


class ProductError(BaseModel):
    """A per-product failure reported in a run result."""
    product_id: str
    title: str
    error: str


class UnmatchedEntry(BaseModel):
    """A product that could not be tied to a CJ product."""
    product_id: str
    title: str
    sku: Optional[str] = None
    reason: str


class SyncRunLog(BaseModel):
    """One execute run, appended to the log of its calendar day."""
    id: str = Field(default_factory=generate_uuid)
    started_at: datetime
    finished_at: datetime
    duration: float
    trigger: TriggerType = TriggerType.API
    scope: Optional[List[str]] = None
    cancelled: bool = False

    # Statistics
    total: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    unmatched: int = 0

    policy: PricingPolicy
    changes: List[PriceChange] = Field(default_factory=list)
    errors: List[ProductError] = Field(default_factory=list)
