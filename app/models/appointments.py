"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    MetaData,
    Table,
    Text,
    Time,
    Uuid,
    func,
    text,
)

metadata = MetaData()

# Partial-index predicate shared by the live-slot uniqueness index
LIVE_SLOT_PREDICATE = "status IN ('pending', 'approved', 'scheduled')"

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("requester_id", Uuid, nullable=False, index=True),
    Column("assigned_staff_id", Uuid, nullable=True, index=True),
    Column("created_by", Uuid, nullable=True),
    # Request details
    Column("status", Text, nullable=False, server_default="pending"),
    Column("priority", Text, nullable=False, server_default="medium"),
    Column("health_issue_category", Text, nullable=False),
    Column("symptoms", Text, nullable=False),
    # Calendar slot
    Column("requested_date", Date, nullable=False),
    Column("requested_time", Time, nullable=False),
    # Outcome
    Column("rejection_reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Soft delete (healthcare compliance)
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'approved', 'rejected', 'scheduled', 'completed', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "priority IN ('low', 'medium', 'high')",
        name="appointments_priority_check",
    ),
    # At most one live appointment per (date, time)
    Index(
        "uq_appointments_live_slot",
        "requested_date",
        "requested_time",
        unique=True,
        postgresql_where=text(LIVE_SLOT_PREDICATE),
        sqlite_where=text(LIVE_SLOT_PREDICATE),
    ),
)
