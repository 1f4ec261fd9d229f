"""
Database connection and ORM utilities for PharmAuth.

This package provides async database connection management via SQLAlchemy
and the ORM model definitions for the PostgreSQL backend.
"""

from pa_common.db.bootstrap import create_schema, provision_manufacturer
from pa_common.db.connection import (
    build_engine,
    build_session_factory,
    check_database_health,
)
from pa_common.db.orm_models import (
    ApiKeyORM,
    AuthenticationCodeORM,
    Base,
    BatchORM,
    ManufacturerORM,
    VerificationLogORM,
)

__all__ = [
    "ApiKeyORM",
    "AuthenticationCodeORM",
    "Base",
    "BatchORM",
    "ManufacturerORM",
    "VerificationLogORM",
    "build_engine",
    "build_session_factory",
    "check_database_health",
    "create_schema",
    "provision_manufacturer",
]
