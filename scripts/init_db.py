"""Initialize the PharmAuth database schema and optionally provision a manufacturer.

Creates all tables from the ORM metadata.  With ``--manufacturer-id`` it
also ensures that manufacturer exists and prints a newly issued API key.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --manufacturer-id M1 --manufacturer-name "Acme Pharma"
"""

from __future__ import annotations

import argparse
import asyncio

import structlog

from pa_common.config import get_settings
from pa_common.db import build_engine, build_session_factory, create_schema, provision_manufacturer
from pa_common.logging import configure_logging

logger = structlog.get_logger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the PharmAuth database")
    parser.add_argument("--manufacturer-id", type=str, default=None, help="Manufacturer to provision")
    parser.add_argument("--manufacturer-name", type=str, default=None, help="Manufacturer display name")
    parser.add_argument("--key-name", type=str, default="default", help="Label for the issued API key")
    return parser.parse_args()


async def main() -> None:
    """Create the schema and provision the requested manufacturer."""
    args = parse_args()
    settings = get_settings()
    configure_logging("init_db", settings.log_level)

    engine = build_engine(settings=settings)
    try:
        await create_schema(engine)
        if args.manufacturer_id:
            api_key = await provision_manufacturer(
                build_session_factory(engine),
                args.manufacturer_id,
                args.manufacturer_name or args.manufacturer_id,
                hash_secret=settings.api_key_hash_secret,
                key_name=args.key_name,
            )
            print(f"API key for {args.manufacturer_id}: {api_key}", flush=True)
    finally:
        await engine.dispose()
    logger.info("db_initialized")


if __name__ == "__main__":
    asyncio.run(main())
