"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
)

# Metadata for the appointment store
metadata = MetaData()

# Appointments table (global record, one row per intake request)
appointments = Table(
    "appointments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("insured_id", String(5), nullable=False),
    Column("schedule_id", BigInteger, nullable=False),
    Column("country_iso", String(2), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    # Secondary index used by the query-by-insured operation
    Index("ix_appointments_insured_id", "insured_id"),
    Index("ix_appointments_status_updated_at", "status", "updated_at"),
    CheckConstraint(
        "country_iso IN ('PE', 'CL')",
        name="appointments_country_iso_check",
    ),
    CheckConstraint(
        "status IN ('pending', 'completed')",
        name="appointments_status_check",
    ),
)
