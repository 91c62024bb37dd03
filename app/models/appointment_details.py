"""Country-local appointment detail table."""

from sqlalchemy import BigInteger, Column, DateTime, MetaData, String, Table

# Each country database holds only this table
metadata = MetaData()

appointment_details = Table(
    "appointment_details",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("insured_id", String(5), nullable=False),
    Column("schedule_id", BigInteger, nullable=False),
    Column("country_iso", String(2), nullable=False),
    Column("status", String(20), nullable=False, server_default="completed"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)
