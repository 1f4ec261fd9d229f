"""
Schema bootstrap and tenant provisioning for PharmAuth.

Creates the PostgreSQL tables from the ORM metadata and provisions a
manufacturer with an API key.  Both operations are idempotent with respect
to existing rows: tables that exist are left alone, and an existing
manufacturer is reused.
"""

from __future__ import annotations

import secrets
from typing import Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from pa_common.db.orm_models import ApiKeyORM, Base, ManufacturerORM
from pa_common.models import hash_api_key

logger = structlog.get_logger(__name__)

API_KEY_PREFIX = "pk_"


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table (and enum type) that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("schema_created", tables=sorted(Base.metadata.tables))


def new_api_key() -> str:
    """Return a fresh plain API key."""
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


async def provision_manufacturer(
    session_factory: Callable[[], AsyncSession],
    manufacturer_id: str,
    name: str,
    *,
    hash_secret: str,
    key_name: str = "default",
) -> str:
    """Ensure *manufacturer_id* exists and issue it a new API key.

    Returns:
        The plain API key.  Only its salted hash is stored, so this is the
        one chance to record it.
    """
    api_key = new_api_key()
    async with session_factory() as session:
        async with session.begin():
            manufacturer = (
                await session.execute(
                    select(ManufacturerORM).where(
                        ManufacturerORM.manufacturer_id == manufacturer_id,
                    ),
                )
            ).scalar_one_or_none()
            if manufacturer is None:
                manufacturer = ManufacturerORM(manufacturer_id=manufacturer_id, name=name)
                session.add(manufacturer)
                await session.flush()
                logger.info("manufacturer_created", manufacturer_id=manufacturer_id)

            session.add(
                ApiKeyORM(
                    key_hash=hash_api_key(api_key, hash_secret),
                    manufacturer_pk=manufacturer.id,
                    name=key_name,
                ),
            )
    logger.info("api_key_issued", manufacturer_id=manufacturer_id, key_name=key_name)
    return api_key
