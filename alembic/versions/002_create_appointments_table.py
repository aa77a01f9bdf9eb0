"""Create appointments table

Revision ID: 002
Revises: 001
Create Date: 2026-10-05

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

LIVE_SLOT_PREDICATE = "status IN ('pending', 'approved', 'scheduled')"


def upgrade() -> None:
    """Create appointments table with the live-slot uniqueness index."""
    op.create_table(
        "appointments",
        sa.Column(
            "id",
            sa.Uuid(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("requester_id", sa.Uuid(), nullable=False),
        sa.Column("assigned_staff_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("status", sa.Text(), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("priority", sa.Text(), server_default=sa.text("'medium'"), nullable=False),
        sa.Column("health_issue_category", sa.Text(), nullable=False),
        sa.Column("symptoms", sa.Text(), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=False),
        sa.Column("requested_time", sa.Time(), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'scheduled', 'completed', 'cancelled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'medium', 'high')",
            name="appointments_priority_check",
        ),
    )

    op.create_index("ix_appointments_requester_id", "appointments", ["requester_id"])
    op.create_index("ix_appointments_assigned_staff_id", "appointments", ["assigned_staff_id"])
    op.create_index(
        "uq_appointments_live_slot",
        "appointments",
        ["requested_date", "requested_time"],
        unique=True,
        postgresql_where=sa.text(LIVE_SLOT_PREDICATE),
    )
    # Pending queue reads
    op.create_index(
        "idx_appointments_pending_queue",
        "appointments",
        ["priority", "requested_date", "requested_time"],
        postgresql_where=sa.text("status = 'pending' AND deleted_at IS NULL"),
    )


def downgrade() -> None:
    """Drop appointments table."""
    op.drop_index("idx_appointments_pending_queue", table_name="appointments")
    op.drop_index("uq_appointments_live_slot", table_name="appointments")
    op.drop_table("appointments")
