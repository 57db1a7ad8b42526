"""
Pricing policy storage.

Precedence for every computation: call-site overrides, then the stored
policy, then the built-in defaults of PricingPolicy.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from ..db import PricingPolicy, PolicyOverrides, SQLiteDatabase

logger = logging.getLogger(__name__)

POLICY_KEY = "pricing_policy"


class PolicyStore:
    """Get-or-default / put access to the active pricing policy."""

    def __init__(self, db: SQLiteDatabase, key: str = POLICY_KEY):
        self.db = db
        self.key = key

    async def get(self) -> PricingPolicy:
        """Return the stored policy, creating it with defaults if absent."""
        document = await self.db.get_document(self.key)

        if document is None:
            policy = PricingPolicy(version=1, updated_at=datetime.now(timezone.utc))
            await self.db.put_document(self.key, policy.model_dump(mode="json"))
            logger.info("No pricing policy stored, created defaults")
            return policy

        try:
            return PricingPolicy.model_validate(document)
        except ValidationError as e:
            # A broken document must not block syncing; defaults apply until saved
            logger.error(f"Stored pricing policy is invalid, using defaults: {e}")
            return PricingPolicy()

    async def put(self, policy: PricingPolicy) -> PricingPolicy:
        """Save a new policy version. Returns the stored policy."""
        current = await self.db.get_document(self.key)
        version = int((current or {}).get("version", 0)) + 1

        saved = policy.model_copy(
            update={"version": version, "updated_at": datetime.now(timezone.utc)}
        )
        await self.db.put_document(self.key, saved.model_dump(mode="json"))
        logger.info(f"Pricing policy saved (version {version})")
        return saved

    async def effective(self, overrides: Optional[PolicyOverrides] = None) -> PricingPolicy:
        """Stored policy with call-site overrides applied."""
        return (await self.get()).apply(overrides)
