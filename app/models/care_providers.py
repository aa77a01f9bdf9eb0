"""Care provider model definition using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    MetaData,
    Table,
    Text,
    Uuid,
    func,
    true,
)

metadata = MetaData()

care_providers = Table(
    "care_providers",
    metadata,
    # Same id as the staff member's user account
    Column("id", Uuid, primary_key=True),
    Column("name", Text, nullable=False),
    Column("specialty_group", Text, nullable=False, index=True),
    Column("active", Boolean, nullable=False, server_default=true(), index=True),
    # {"monday": ["09:00-17:00"], ...}
    Column("weekly_shifts", JSON, nullable=True),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
