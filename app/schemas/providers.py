"""Care provider schemas for request/response validation."""

from datetime import datetime, time
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def validate_weekly_shifts(
    shifts: dict[str, list[str]] | None,
) -> dict[str, list[str]] | None:
    """
    Validate a weekly shift schedule.

    The schedule maps lower-case weekday names to lists of ``HH:MM-HH:MM``
    ranges, e.g. ``{"monday": ["09:00-17:00"]}``.

    Raises:
        ValueError: On unknown days, malformed ranges or empty ranges
    """
    if shifts is None:
        return None

    normalized: dict[str, list[str]] = {}
    for day, ranges in shifts.items():
        key = day.strip().lower()
        if key not in WEEKDAYS:
            raise ValueError(f"Invalid day: {day}. Must be one of: {', '.join(WEEKDAYS)}")
        for shift in ranges:
            start_raw, sep, end_raw = shift.partition("-")
            try:
                start = time.fromisoformat(start_raw.strip())
                end = time.fromisoformat(end_raw.strip())
            except ValueError as e:
                raise ValueError(f'Invalid shift format: {shift}. Must be "HH:MM-HH:MM"') from e
            if not sep or start >= end:
                raise ValueError(f"Invalid shift: {shift}. Start time must be before end time")
        normalized[key] = [shift.strip() for shift in ranges]
    return normalized


class CareProviderCreate(BaseModel):
    """Schema for registering a care provider."""

    id: UUID = Field(..., description="Staff member's user id")
    name: str = Field(..., min_length=1, max_length=200)
    specialty_group: str = Field(..., min_length=1, max_length=50)
    active: bool = True
    weekly_shifts: dict[str, list[str]] | None = None

    @field_validator("specialty_group")
    @classmethod
    def normalize_specialty(cls, v: str) -> str:
        """Specialty groups are stored lower-case."""
        return v.strip().lower()

    @field_validator("weekly_shifts")
    @classmethod
    def check_shifts(cls, v: dict[str, list[str]] | None) -> dict[str, list[str]] | None:
        """Validate shift schedule format."""
        return validate_weekly_shifts(v)


class CareProviderUpdate(BaseModel):
    """Schema for updating a care provider."""

    name: str | None = Field(None, min_length=1, max_length=200)
    specialty_group: str | None = Field(None, min_length=1, max_length=50)
    active: bool | None = None
    weekly_shifts: dict[str, list[str]] | None = None

    @field_validator("specialty_group")
    @classmethod
    def normalize_specialty(cls, v: str | None) -> str | None:
        """Specialty groups are stored lower-case."""
        return v.strip().lower() if v is not None else None

    @field_validator("weekly_shifts")
    @classmethod
    def check_shifts(cls, v: dict[str, list[str]] | None) -> dict[str, list[str]] | None:
        """Validate shift schedule format."""
        return validate_weekly_shifts(v)


class CareProviderResponse(BaseModel):
    """Schema for care provider response."""

    id: UUID
    name: str
    specialty_group: str
    active: bool
    weekly_shifts: dict[str, list[str]] | None = None
    current_load: int | None = None

    model_config = {"from_attributes": True}


class CareProviderDetail(CareProviderResponse):
    """Provider with audit timestamps."""

    created_at: datetime
    updated_at: datetime
