"""Slot availability index and nearest-slot resolution."""

from datetime import date, time
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.appointments import appointments
from app.schemas.appointments import LIVE_STATUSES
from app.schemas.calendar import CalendarSlot
from app.services.calendar_service import CalendarService


def nearest_slot(available: list[CalendarSlot], anchor: time) -> CalendarSlot | None:
    """
    Pick the bookable slot closest to ``anchor``.

    Scans forward from the anchor first and only then backward, so an open
    slot later in the day wins over an equally close earlier one.

    Args:
        available: Available slots, ascending by start time
        anchor: Grid-aligned search start

    Returns:
        The first slot at/after the anchor, else the latest slot before it,
        else None
    """
    for slot in available:
        if slot.start_time >= anchor:
            return slot
    for slot in reversed(available):
        if slot.start_time < anchor:
            return slot
    return None


class AvailabilityService:
    """Computes which grid slots are free on a date."""

    def __init__(self, db: AsyncSession, calendar: CalendarService | None = None):
        """Initialize service with database session and calendar rules."""
        self.db = db
        self.calendar = calendar or CalendarService(db)

    async def occupied_times(
        self,
        day: date,
        exclude_appointment_id: UUID | None = None,
    ) -> set[time]:
        """Start times held by live appointments on a date."""
        conditions = [
            appointments.c.requested_date == day,
            appointments.c.status.in_([s.value for s in LIVE_STATUSES]),
            appointments.c.deleted_at.is_(None),
        ]
        if exclude_appointment_id is not None:
            conditions.append(appointments.c.id != exclude_appointment_id)

        result = await self.db.execute(
            select(appointments.c.requested_time).where(and_(*conditions))
        )
        return {row.requested_time for row in result}

    async def available_slots(
        self,
        day: date,
        exclude_appointment_id: UUID | None = None,
    ) -> list[CalendarSlot]:
        """
        Get bookable, unoccupied slots for a date.

        Args:
            day: Calendar date
            exclude_appointment_id: Treat this appointment's own slot as free
                (used when it is being moved)

        Returns:
            Slots ascending by start time; empty for non-bookable days
        """
        slots = await self.calendar.slots_for_day(day)
        if not slots:
            return []
        occupied = await self.occupied_times(day, exclude_appointment_id)
        return [slot for slot in slots if slot.start_time not in occupied]

    async def find_nearest(
        self,
        day: date,
        requested_time: time,
        exclude_appointment_id: UUID | None = None,
    ) -> CalendarSlot:
        """
        Resolve a requested time to the nearest available slot on the same date.

        The requested time is floored to the grid first; the floored anchor
        itself need not be available.

        Raises:
            NotFoundException: If no slot on that date is available
        """
        anchor = self.calendar.grid.floor_to_grid(requested_time)
        available = await self.available_slots(day, exclude_appointment_id)
        slot = nearest_slot(available, anchor)
        if slot is None:
            raise NotFoundException(f"No available slot on {day.isoformat()}")
        return slot
