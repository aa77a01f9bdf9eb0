"""Calendar rules: the weekday slot grid and blackout dates."""

from datetime import UTC, date, datetime, time
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings
from app.core.exceptions import ConflictException, NotFoundException
from app.models.appointments import appointments
from app.models.blackout_dates import blackout_dates
from app.schemas.appointments import LIVE_STATUSES, AppointmentStatus
from app.schemas.calendar import (
    BlackoutDateCreate,
    BlackoutDateResponse,
    BlackoutDateResult,
    CalendarSlot,
)
from app.services.notification_service import EventType, NotificationService

logger = structlog.get_logger(__name__)

LIVE_STATUS_VALUES = [s.value for s in LIVE_STATUSES]


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


class CalendarGrid:
    """
    Fixed-width slot grid over configured business windows.

    Pure value logic; blackout dates are layered on by ``CalendarService``.
    """

    def __init__(
        self,
        slot_minutes: int,
        windows: list[tuple[time, time]],
        working_days: frozenset[int],
    ):
        """Initialize grid from slot width, business windows and ISO working days."""
        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")
        self.slot_minutes = slot_minutes
        self.windows = sorted(windows)
        self.working_days = working_days
        self._starts = self._build_starts()

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "CalendarGrid":
        """Build the grid from application settings."""
        config = config or settings
        return cls(
            slot_minutes=config.slot_duration_minutes,
            windows=config.business_windows,
            working_days=config.working_days_set,
        )

    def _build_starts(self) -> list[time]:
        starts: list[time] = []
        for window_start, window_end in self.windows:
            current = _minutes(window_start)
            end = _minutes(window_end)
            while current + self.slot_minutes <= end:
                starts.append(_from_minutes(current))
                current += self.slot_minutes
        return starts

    def is_working_day(self, day: date) -> bool:
        return day.isoweekday() in self.working_days

    def slots_for_weekday(self, iso_weekday: int) -> list[CalendarSlot]:
        """All grid slots for a weekday, ascending by start time."""
        if iso_weekday not in self.working_days:
            return []
        return [self.slot_at(iso_weekday, start) for start in self._starts]

    def slot_at(self, iso_weekday: int, start: time) -> CalendarSlot:
        end = _from_minutes(_minutes(start) + self.slot_minutes)
        return CalendarSlot(day_of_week=iso_weekday, start_time=start, end_time=end)

    def is_grid_time(self, iso_weekday: int, t: time) -> bool:
        """Whether ``t`` is the start of a grid slot on that weekday."""
        return iso_weekday in self.working_days and t in self._starts

    def floor_to_grid(self, t: time) -> time:
        """
        Round a time of day down to the start of the grid slot holding it.

        Slot starts are counted from each window's opening, not from
        midnight. A time outside every window (before opening, in a gap
        between windows, after closing) is returned unchanged, so a forward
        scan from it reaches the next window's first slot.
        """
        for window_start, window_end in self.windows:
            if window_start <= t < window_end:
                floored = [s for s in self._starts if window_start <= s <= t]
                if floored:
                    return floored[-1]
        return t


class CalendarService:
    """Service answering which (date, time) pairs are schedulable."""

    def __init__(self, db: AsyncSession, grid: CalendarGrid | None = None):
        """Initialize service with database session and slot grid."""
        self.db = db
        self.grid = grid or CalendarGrid.from_settings()

    async def is_blackout_date(self, day: date) -> bool:
        stmt = select(blackout_dates.c.date).where(blackout_dates.c.date == day)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def is_bookable_day(self, day: date) -> bool:
        """A day is bookable when it is a working weekday and not blacked out."""
        if not self.grid.is_working_day(day):
            return False
        return not await self.is_blackout_date(day)

    async def slots_for_day(self, day: date) -> list[CalendarSlot]:
        """
        Get the grid slots for a date.

        Args:
            day: Calendar date

        Returns:
            Slots ascending by start time; empty for weekends and blackout dates
        """
        if not await self.is_bookable_day(day):
            return []
        return self.grid.slots_for_weekday(day.isoweekday())

    # ------------------------------------------------------------------
    # Blackout dates
    # ------------------------------------------------------------------

    async def add_blackout_date(
        self,
        data: BlackoutDateCreate,
        created_by: UUID | None = None,
    ) -> BlackoutDateResult:
        """
        Black out a date and cancel every live appointment booked on it.

        Args:
            data: Date, reason and category
            created_by: Admin performing the change

        Returns:
            The blackout record and the ids of cancelled appointments

        Raises:
            ConflictException: If the date is already blacked out
        """
        if await self.is_blackout_date(data.date):
            raise ConflictException(f"Blackout date for {data.date.isoformat()} already exists")

        now = datetime.now(UTC)
        try:
            result = await self.db.execute(
                insert(blackout_dates)
                .values(
                    date=data.date,
                    reason=data.reason,
                    category=data.category,
                    created_by=created_by,
                    created_at=now,
                )
                .returning(blackout_dates)
            )
            blackout_row = result.mappings().one()

            cancel_result = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.requested_date == data.date,
                        appointments.c.status.in_(LIVE_STATUS_VALUES),
                        appointments.c.deleted_at.is_(None),
                    )
                )
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    cancelled_at=now,
                    updated_at=now,
                )
                .returning(appointments)
            )
            cancelled_rows = cancel_result.mappings().all()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictException(
                f"Blackout date for {data.date.isoformat()} already exists"
            ) from e

        logger.info(
            "blackout_date_added",
            date=data.date.isoformat(),
            category=data.category,
            cancelled_count=len(cancelled_rows),
        )

        for row in cancelled_rows:
            await NotificationService.emit(EventType.APPOINTMENT_CANCELLED, row, data.reason)

        return BlackoutDateResult(
            blackout_date=BlackoutDateResponse.model_validate(dict(blackout_row)),
            cancelled_appointment_ids=[row["id"] for row in cancelled_rows],
        )

    async def remove_blackout_date(self, day: date) -> BlackoutDateResponse:
        """
        Remove a blackout date. Appointments cancelled by it stay cancelled.

        Raises:
            NotFoundException: If the date is not blacked out
        """
        result = await self.db.execute(
            blackout_dates.delete().where(blackout_dates.c.date == day).returning(blackout_dates)
        )
        row = result.mappings().first()
        if not row:
            await self.db.rollback()
            raise NotFoundException(f"No blackout date for {day.isoformat()}")
        await self.db.commit()

        logger.info("blackout_date_removed", date=day.isoformat())
        return BlackoutDateResponse.model_validate(dict(row))

    async def list_blackout_dates(
        self,
        start: date | None = None,
        end: date | None = None,
        category: str | None = None,
    ) -> list[BlackoutDateResponse]:
        """List blackout dates ascending, optionally by range and category."""
        conditions = []
        if start:
            conditions.append(blackout_dates.c.date >= start)
        if end:
            conditions.append(blackout_dates.c.date <= end)
        if category:
            conditions.append(blackout_dates.c.category == category)

        stmt = select(blackout_dates).order_by(blackout_dates.c.date.asc())
        if conditions:
            stmt = stmt.where(and_(*conditions))

        result = await self.db.execute(stmt)
        return [BlackoutDateResponse.model_validate(dict(row)) for row in result.mappings().all()]

