"""
SQLAlchemy ORM models for PharmAuth.

Defines the table mappings for manufacturers, API keys, batches,
authentication codes, and the append-only verification log using
SQLAlchemy 2.0 declarative style with ``mapped_column``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return timezone-aware UTC now for server defaults."""
    return datetime.now(timezone.utc)


# ── Base class ──


class Base(DeclarativeBase):
    """Declarative base for all PharmAuth ORM models."""


# ── Enum values (mirroring Pydantic enums) ──

BATCH_STATUS_ENUM = Enum("active", "revoked", name="batch_status_enum")
CODE_STATUS_ENUM = Enum("active", "revoked", name="code_status_enum")
VERIFICATION_RESULT_ENUM = Enum(
    "authentic", "duplicate", "suspicious", "invalid", "revoked", "expired",
    name="verification_result_enum",
)


# ── ORM models ──


class ManufacturerORM(Base):
    """ORM model for the ``manufacturers`` table."""

    __tablename__ = "manufacturers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )

    batches: Mapped[list[BatchORM]] = relationship(back_populates="manufacturer")
    api_keys: Mapped[list[ApiKeyORM]] = relationship(back_populates="manufacturer")


class ApiKeyORM(Base):
    """ORM model for the ``api_keys`` table (keys are stored hashed)."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    manufacturer_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("manufacturers.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )

    manufacturer: Mapped[ManufacturerORM] = relationship(back_populates="api_keys")


class BatchORM(Base):
    """ORM model for the ``batches`` table."""

    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint("manufacturer_pk", "batch_id", name="uq_batches_manufacturer_batch"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("manufacturers.id"), nullable=False,
    )
    batch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    strength: Mapped[str | None] = mapped_column(String(100), nullable=True)
    form: Mapped[str | None] = mapped_column(String(100), nullable=True)
    packaging: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manufacturing_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(BATCH_STATUS_ENUM, nullable=False, default="active")
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now,
    )

    manufacturer: Mapped[ManufacturerORM] = relationship(back_populates="batches")
    codes: Mapped[list[AuthenticationCodeORM]] = relationship(back_populates="batch")


class AuthenticationCodeORM(Base):
    """ORM model for the ``authentication_codes`` table."""

    __tablename__ = "authentication_codes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    batch_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id"), nullable=False, index=True,
    )
    serial_number: Mapped[str] = mapped_column(String(120), nullable=False)
    authentication_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(CODE_STATUS_ENUM, nullable=False, default="active")
    first_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )

    batch: Mapped[BatchORM] = relationship(back_populates="codes")


class VerificationLogORM(Base):
    """ORM model for the ``verification_logs`` table.

    Append-only: the application never updates or deletes rows.
    """

    __tablename__ = "verification_logs"
    __table_args__ = (
        Index("ix_verification_logs_code_time", "authentication_code_id", "verified_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    authentication_code_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("authentication_codes.id"), nullable=True,
    )
    scanned_code: Mapped[str] = mapped_column(String(64), nullable=False)
    api_key_id: Mapped[str] = mapped_column(String(64), nullable=False)
    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    result: Mapped[str] = mapped_column(VERIFICATION_RESULT_ENUM, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    is_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_offline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
