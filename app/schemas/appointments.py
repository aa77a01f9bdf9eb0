"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy a calendar slot
LIVE_STATUSES: frozenset[AppointmentStatus] = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.SCHEDULED}
)

TERMINAL_STATUSES: frozenset[AppointmentStatus] = frozenset(
    {AppointmentStatus.REJECTED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
)


class Priority(str, Enum):
    """Appointment priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AppointmentCreate(BaseModel):
    """Schema for requesting a new appointment.

    ``requested_time`` may fall off the grid when a requester books; it is
    resolved to the nearest bookable slot. Staff and admins may pin an exact
    slot with ``exact_slot``.
    """

    symptoms: str = Field(..., min_length=1, max_length=2000)
    priority: Priority = Priority.MEDIUM
    health_issue_category: str = Field(..., min_length=1, max_length=50)
    requested_date: date
    requested_time: time
    staff_id: UUID | None = None
    requester_id: UUID | None = Field(
        None, description="Patient the appointment is booked for (staff/admin only)"
    )
    exact_slot: bool = False
    notes: str | None = Field(None, max_length=1000)

    @field_validator("health_issue_category")
    @classmethod
    def normalize_category(cls, v: str) -> str:
        """Categories are matched case-insensitively."""
        return v.strip().lower()


class AppointmentUpdate(BaseModel):
    """Schema for partially updating an appointment."""

    symptoms: str | None = Field(None, min_length=1, max_length=2000)
    priority: Priority | None = None
    requested_date: date | None = None
    requested_time: time | None = None
    status: str | None = Field(None, description="Target status, validated by the state machine")
    notes: str | None = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str | None) -> str | None:
        """Trim and lower-case the requested status."""
        return v.strip().lower() if v is not None else None


class ApproveRequest(BaseModel):
    """Optional slot override supplied when approving."""

    requested_date: date | None = None
    requested_time: time | None = None


class RejectRequest(BaseModel):
    """Rejection payload."""

    reason: str | None = Field(None, max_length=1000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    requester_id: UUID
    assigned_staff_id: UUID | None = None
    created_by: UUID | None = None
    status: AppointmentStatus
    priority: Priority
    health_issue_category: str
    symptoms: str
    requested_date: date
    requested_time: time
    rejection_reason: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
