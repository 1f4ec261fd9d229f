"""initial schema

Revision ID: 7c1e04b9d2a3
Revises:
Create Date: 2026-05-01 09:12:44.318201

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '7c1e04b9d2a3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Custom enum types (created explicitly below)
batch_status_enum = postgresql.ENUM(
    "active", "revoked",
    name="batch_status_enum", create_type=False,
)
code_status_enum = postgresql.ENUM(
    "active", "revoked",
    name="code_status_enum", create_type=False,
)
verification_result_enum = postgresql.ENUM(
    "authentic", "duplicate", "suspicious", "invalid", "revoked", "expired",
    name="verification_result_enum", create_type=False,
)


def upgrade() -> None:
    # Create enum types
    batch_status_enum.create(op.get_bind(), checkfirst=True)
    code_status_enum.create(op.get_bind(), checkfirst=True)
    verification_result_enum.create(op.get_bind(), checkfirst=True)

    # manufacturers
    op.create_table(
        "manufacturers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("manufacturer_id", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # api_keys (hashed)
    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("key_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("manufacturer_pk", sa.Integer, sa.ForeignKey("manufacturers.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # batches
    op.create_table(
        "batches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("manufacturer_pk", sa.Integer, sa.ForeignKey("manufacturers.id"), nullable=False),
        sa.Column("batch_id", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_code", sa.String(100), nullable=True),
        sa.Column("strength", sa.String(100), nullable=True),
        sa.Column("form", sa.String(100), nullable=True),
        sa.Column("packaging", sa.String(255), nullable=True),
        sa.Column("manufacturing_date", sa.Date, nullable=True),
        sa.Column("expiry_date", sa.Date, nullable=True),
        sa.Column("total_units", sa.Integer, nullable=False),
        sa.Column("status", batch_status_enum, nullable=False, server_default="active"),
        sa.Column("revocation_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("manufacturer_pk", "batch_id", name="uq_batches_manufacturer_batch"),
    )

    # authentication_codes (BIGSERIAL PK)
    op.create_table(
        "authentication_codes",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("batch_pk", sa.Integer, sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("serial_number", sa.String(120), nullable=False),
        sa.Column("authentication_code", sa.String(32), nullable=False, unique=True),
        sa.Column("status", code_status_enum, nullable=False, server_default="active"),
        sa.Column("first_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_authentication_codes_batch_pk", "authentication_codes", ["batch_pk"])

    # verification_logs (append-only)
    op.create_table(
        "verification_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "authentication_code_id",
            sa.BigInteger,
            sa.ForeignKey("authentication_codes.id"),
            nullable=True,
        ),
        sa.Column("scanned_code", sa.String(64), nullable=False),
        sa.Column("api_key_id", sa.String(64), nullable=False),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
        sa.Column("result", verification_result_enum, nullable=False),
        sa.Column("confidence_score", sa.Float, nullable=False),
        sa.Column("is_duplicate", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_offline", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index(
        "ix_verification_logs_code_time",
        "verification_logs",
        ["authentication_code_id", "verified_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_verification_logs_code_time", table_name="verification_logs")
    op.drop_table("verification_logs")
    op.drop_index("ix_authentication_codes_batch_pk", table_name="authentication_codes")
    op.drop_table("authentication_codes")
    op.drop_table("batches")
    op.drop_table("api_keys")
    op.drop_table("manufacturers")

    verification_result_enum.drop(op.get_bind(), checkfirst=True)
    code_status_enum.drop(op.get_bind(), checkfirst=True)
    batch_status_enum.drop(op.get_bind(), checkfirst=True)
