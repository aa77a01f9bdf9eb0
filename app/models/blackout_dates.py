"""Blackout dates table model using SQLAlchemy Core."""

from sqlalchemy import Column, Date, DateTime, MetaData, Table, Text, Uuid, func

metadata = MetaData()

blackout_dates = Table(
    "blackout_dates",
    metadata,
    Column("date", Date, primary_key=True),
    Column("reason", Text, nullable=False),
    Column("category", Text, nullable=False, server_default="holiday"),
    Column("created_by", Uuid, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
