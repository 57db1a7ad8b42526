#!/usr/bin/env python3
"""
Run the CJ price sync from the command line.

Usage:
    python scripts/run_sync.py preview
    python scripts/run_sync.py execute [--product-id ID ...]
    python scripts/run_sync.py product <product_id>

Cron: 0 3 * * * cd /path/to/app && /path/to/venv/bin/python scripts/run_sync.py execute
Exits with status 1 when the run fails or any product failed to update.
"""

import argparse
import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.db import SQLiteDatabase, TriggerType
from app.processor import (
    RunRegistry,
    SyncError,
    create_rate_state,
    format_price,
    resolve_credentials,
    run_execute,
    run_preview,
    run_sync_one,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sync Shopify prices with CJ Dropshipping")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("preview", help="Show projected changes without writing")

    execute = commands.add_parser("execute", help="Update prices in Shopify")
    execute.add_argument(
        "--product-id", dest="product_ids", action="append",
        help="Limit the run to this product (repeatable)"
    )

    product = commands.add_parser("product", help="Sync a single product")
    product.add_argument("product_id")

    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    db = SQLiteDatabase(settings.database_path)
    await db.initialize()
    rate_state = create_rate_state()

    try:
        credentials = resolve_credentials()

        if args.command == "preview":
            preview = await run_preview(db, rate_state, credentials)
            if not preview.success:
                logger.error(preview.error)
                return 1
            for change in preview.products:
                logger.info(
                    f"  {change.title}: {format_price(change.previous_price)} -> "
                    f"{format_price(change.new_price)} ({change.direction.value})"
                )
            for miss in preview.missing:
                logger.info(f"  {miss.title}: {miss.reason}")
            return 0

        if args.command == "execute":
            result = await run_execute(
                db, rate_state, RunRegistry(), credentials,
                product_ids=args.product_ids,
                trigger=TriggerType.CLI,
            )
            if not result.success:
                logger.error(result.error)
                return 1
            for error in result.errors:
                logger.error(f"  {error.title}: {error.error}")
            return 1 if result.failed else 0

        single = await run_sync_one(
            db, rate_state, credentials, args.product_id, trigger=TriggerType.CLI
        )
        if single.change:
            logger.info(
                f"{single.change.title}: {format_price(single.change.previous_price)} -> "
                f"{format_price(single.change.new_price)} ({single.status.value})"
            )
        else:
            logger.info(f"Product {single.product_id}: {single.reason or single.error}")
        return 0 if single.success else 1

    except SyncError as e:
        logger.error(f"Sync failed: {e}")
        return 1

    finally:
        await db.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
