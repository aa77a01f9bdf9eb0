"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.blackout_dates import blackout_dates
from app.models.blackout_dates import metadata as blackout_dates_metadata
from app.models.care_providers import care_providers
from app.models.care_providers import metadata as care_providers_metadata

# Combined metadata for create_all / drop_all
metadata = MetaData()
for _source in (appointments_metadata, blackout_dates_metadata, care_providers_metadata):
    for _table in _source.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointments",
    "blackout_dates",
    "care_providers",
    "metadata",
]
