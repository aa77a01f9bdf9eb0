"""Conflict-safe slot reservation."""

from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.models.appointments import appointments
from app.services.calendar_service import CalendarService

logger = structlog.get_logger(__name__)


class BookingService:
    """
    Atomically claims a (date, time) slot.

    The partial unique index ``uq_appointments_live_slot`` is the final
    arbiter: two writers racing for one slot both reach the database, exactly
    one commits and the other gets ``ConflictException``. Availability reads
    done before calling in here are advisory only.

    Blackout dates are checked before writing and again inside the writing
    transaction, right before commit, so a blackout committed while the
    write was in flight rolls the reservation back. A blackout that commits
    after that second read is not serialized against the booking; its own
    cancel statement only covers appointments already committed.
    """

    def __init__(self, db: AsyncSession, calendar: CalendarService | None = None):
        """Initialize service with database session and calendar rules."""
        self.db = db
        self.calendar = calendar or CalendarService(db)

    async def _ensure_grid_slot(self, day: date, slot_time: time) -> None:
        if not await self.calendar.is_bookable_day(day):
            raise ValidationException(f"{day.isoformat()} is not a bookable day")
        if not self.calendar.grid.is_grid_time(day.isoweekday(), slot_time):
            raise ValidationException(
                f"{slot_time.strftime('%H:%M')} is not a slot start on {day.isoformat()}"
            )

    async def _abort_if_blacked_out(self, day: date) -> None:
        if await self.calendar.is_blackout_date(day):
            await self.db.rollback()
            logger.info("slot_reservation_blacked_out", date=day.isoformat())
            raise ValidationException(f"{day.isoformat()} is not a bookable day")

    async def try_reserve(
        self,
        day: date,
        slot_time: time,
        draft: Mapping[str, Any],
    ) -> dict[str, Any]:
        """
        Insert a new appointment holding ``(day, slot_time)``.

        Args:
            day: Slot date
            slot_time: Slot start time, must be on the grid
            draft: Remaining appointment column values

        Returns:
            The inserted appointment row

        Raises:
            ValidationException: If the slot is not on a bookable grid
            ConflictException: If a live appointment already holds the slot
        """
        await self._ensure_grid_slot(day, slot_time)

        now = datetime.now(UTC)
        values = {
            **draft,
            "id": draft.get("id") or uuid4(),
            "requested_date": day,
            "requested_time": slot_time,
            "created_at": now,
            "updated_at": now,
        }

        try:
            result = await self.db.execute(
                insert(appointments).values(**values).returning(appointments)
            )
            row = dict(result.mappings().one())
            await self._abort_if_blacked_out(day)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "slot_conflict",
                date=day.isoformat(),
                time=slot_time.strftime("%H:%M"),
            )
            raise ConflictException(
                f"Slot {day.isoformat()} {slot_time.strftime('%H:%M')} is already booked"
            ) from e

        logger.info(
            "slot_reserved",
            appointment_id=str(row["id"]),
            date=day.isoformat(),
            time=slot_time.strftime("%H:%M"),
        )
        return row

    async def move(
        self,
        appointment_id: UUID,
        day: date,
        slot_time: time,
        extra_values: Mapping[str, Any] | None = None,
        expected_status: str | None = None,
    ) -> dict[str, Any]:
        """
        Move an existing appointment to a new slot, optionally updating other columns.

        Args:
            appointment_id: Appointment to move
            day: New slot date
            slot_time: New slot start time
            extra_values: Other columns written in the same statement
            expected_status: Only move if the status is still this value

        Raises:
            ValidationException: If the slot is not on a bookable grid
            ConflictException: If a live appointment already holds the slot, or
                the status changed since it was read
            NotFoundException: If the appointment vanished
        """
        await self._ensure_grid_slot(day, slot_time)

        values = {
            **(extra_values or {}),
            "requested_date": day,
            "requested_time": slot_time,
            "updated_at": datetime.now(UTC),
        }

        conditions = [
            appointments.c.id == appointment_id,
            appointments.c.deleted_at.is_(None),
        ]
        if expected_status is not None:
            conditions.append(appointments.c.status == expected_status)

        try:
            result = await self.db.execute(
                update(appointments)
                .where(and_(*conditions))
                .values(**values)
                .returning(appointments)
            )
            row = result.mappings().first()
            if row is None:
                await self.db.rollback()
                if expected_status is not None:
                    raise ConflictException("Appointment was modified concurrently")
                raise NotFoundException("Appointment not found")
            row = dict(row)
            await self._abort_if_blacked_out(day)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "slot_conflict",
                appointment_id=str(appointment_id),
                date=day.isoformat(),
                time=slot_time.strftime("%H:%M"),
            )
            raise ConflictException(
                f"Slot {day.isoformat()} {slot_time.strftime('%H:%M')} is already booked"
            ) from e

        logger.info(
            "slot_moved",
            appointment_id=str(appointment_id),
            date=day.isoformat(),
            time=slot_time.strftime("%H:%M"),
        )
        return row
