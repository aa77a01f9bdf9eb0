"""Calendar slot and blackout date schemas."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field


class CalendarSlot(BaseModel):
    """A fixed-width interval on the calendar grid.

    Slots are values, never persisted. Ordering is by start time.
    """

    day_of_week: int = Field(..., ge=1, le=7, description="ISO weekday, Monday == 1")
    start_time: time
    end_time: time

    model_config = {"frozen": True}


class AvailableSlotsResponse(BaseModel):
    """Available slots for a single date."""

    date: date
    slots: list[CalendarSlot]


class BlackoutDateCreate(BaseModel):
    """Schema for adding a blackout date."""

    date: date
    reason: str = Field(..., min_length=1, max_length=500)
    category: str = Field(default="holiday", min_length=1, max_length=50)


class BlackoutDateResponse(BaseModel):
    """Schema for blackout date response."""

    date: date
    reason: str
    category: str
    created_by: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BlackoutDateResult(BaseModel):
    """Outcome of adding a blackout date."""

    blackout_date: BlackoutDateResponse
    cancelled_appointment_ids: list[UUID]
