"""Appointment service: the scheduling facade."""

from datetime import UTC, date, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.permissions import (
    Actor,
    Operation,
    Role,
    can_delete,
    can_manage,
    can_view,
    is_owner,
    require,
    require_status_target,
)
from app.core.redis_client import CacheManager
from app.models.appointments import appointments
from app.schemas.appointments import (
    LIVE_STATUSES,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    ApproveRequest,
    Priority,
    RejectRequest,
)
from app.services.assignment_service import AssignmentService
from app.services.availability_service import AvailabilityService, nearest_slot
from app.services.booking_service import BookingService
from app.services.calendar_service import CalendarGrid, CalendarService
from app.services.notification_service import EventType, NotificationService
from app.services.provider_service import ProviderService
from app.services.state_machine import parse_status, validate_transition

logger = structlog.get_logger(__name__)

STATUS_EVENTS = {
    AppointmentStatus.APPROVED: EventType.APPOINTMENT_APPROVED,
    AppointmentStatus.REJECTED: EventType.APPOINTMENT_REJECTED,
    AppointmentStatus.CANCELLED: EventType.APPOINTMENT_CANCELLED,
}

PRIORITY_RANK = {
    Priority.HIGH.value: 0,
    Priority.MEDIUM.value: 1,
    Priority.LOW.value: 2,
}


class AppointmentService:
    """Service orchestrating slot resolution, booking, assignment and lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        grid: CalendarGrid | None = None,
    ):
        """Initialize service with database session and collaborators."""
        self.db = db
        self.calendar = CalendarService(db, grid)
        self.availability = AvailabilityService(db, self.calendar)
        self.booking = BookingService(db, self.calendar)
        self.providers = ProviderService(db, cache_manager)
        self.assignment = AssignmentService(self.providers)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_row(self, appointment_id: UUID) -> dict[str, Any]:
        result = await self.db.execute(
            select(appointments).where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.deleted_at.is_(None),
                )
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def _update_row(
        self,
        appointment_id: UUID,
        values: dict[str, Any],
        expected_status: str,
    ) -> dict[str, Any]:
        """Apply an update guarded by the status it was validated against."""
        values["updated_at"] = datetime.now(UTC)
        result = await self.db.execute(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == expected_status,
                    appointments.c.deleted_at.is_(None),
                )
            )
            .values(**values)
            .returning(appointments)
        )
        row = result.mappings().first()
        if row is None:
            await self.db.rollback()
            raise ConflictException("Appointment was modified concurrently")
        row = dict(row)
        await self.db.commit()
        return row

    def _validate_category(self, category: str) -> str:
        allowed = settings.health_issue_category_set
        if category not in allowed:
            raise ValidationException(
                f"Unknown health issue category '{category}'", allowed=sorted(allowed)
            )
        return category

    async def _resolve_slot(
        self,
        day: date,
        requested_time: time,
        exact: bool = False,
        exclude_appointment_id: UUID | None = None,
    ) -> time:
        """
        Pick the slot to reserve for a request.

        An exact request is passed through untouched; booking validates it
        against the grid. Otherwise the requested time is used when free and
        the nearest free slot on the same date when not.

        Raises:
            NotFoundException: If nothing on that date is free
        """
        if exact:
            return requested_time

        available = await self.availability.available_slots(day, exclude_appointment_id)
        if any(slot.start_time == requested_time for slot in available):
            return requested_time

        slot = nearest_slot(available, self.calendar.grid.floor_to_grid(requested_time))
        if slot is None:
            raise NotFoundException(f"No available slot on {day.isoformat()}")

        logger.info(
            "slot_resolved_to_nearest",
            date=day.isoformat(),
            requested=requested_time.strftime("%H:%M"),
            resolved=slot.start_time.strftime("%H:%M"),
        )
        return slot.start_time

    async def _resolve_staff(
        self,
        data: AppointmentCreate,
        day: date,
        at: time,
    ) -> UUID | None:
        if data.staff_id is not None:
            provider = await self.providers.get_provider(data.staff_id)
            if not provider.active:
                raise ValidationException(f"Care provider {provider.id} is not active")
            return provider.id

        try:
            provider = await self.assignment.assign(data.health_issue_category, day, at)
        except NotFoundException as e:
            logger.warning(
                "staff_auto_assign_failed",
                category=data.health_issue_category,
                reason=e.message,
            )
            return None
        return provider.id

    def _transition_values(
        self,
        actor: Actor,
        row: dict[str, Any],
        target: AppointmentStatus,
    ) -> dict[str, Any]:
        """Validate a status change and return the columns it writes."""
        require_status_target(actor, target)
        if actor.role is not Role.REQUESTER and not can_manage(actor, row):
            raise ForbiddenException("Appointment is assigned to another care provider")
        validate_transition(row["status"], target)

        values: dict[str, Any] = {"status": target.value}
        if target is AppointmentStatus.CANCELLED:
            values["cancelled_at"] = datetime.now(UTC)
        if actor.is_staff and row["assigned_staff_id"] is None:
            values["assigned_staff_id"] = actor.id
        return values

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_appointment(
        self,
        actor: Actor,
        data: AppointmentCreate,
    ) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            actor: Caller; requesters book for themselves, staff/admin may
                book for a requester and pin an exact slot
            data: Appointment request

        Returns:
            Created appointment in ``pending`` status

        Raises:
            ValidationException: Unknown category or off-grid explicit slot
            ForbiddenException: Requester booking for someone else or pinning a slot
            NotFoundException: No free slot on the requested date
            ConflictException: The slot was taken by a concurrent booking
        """
        category = self._validate_category(data.health_issue_category)

        requester_id = data.requester_id or actor.id
        if requester_id != actor.id:
            require(actor, Operation.CREATE_ON_BEHALF)
        if data.exact_slot:
            require(actor, Operation.CHOOSE_EXPLICIT_SLOT)

        slot_time = await self._resolve_slot(
            data.requested_date, data.requested_time, exact=data.exact_slot
        )
        staff_id = await self._resolve_staff(data, data.requested_date, slot_time)

        row = await self.booking.try_reserve(
            data.requested_date,
            slot_time,
            {
                "requester_id": requester_id,
                "assigned_staff_id": staff_id,
                "created_by": actor.id,
                "status": AppointmentStatus.PENDING.value,
                "priority": data.priority.value,
                "health_issue_category": category,
                "symptoms": data.symptoms,
                "notes": data.notes,
            },
        )

        logger.info(
            "appointment_created",
            appointment_id=str(row["id"]),
            requester_id=str(requester_id),
            staff_id=str(staff_id) if staff_id else None,
            date=data.requested_date.isoformat(),
            time=slot_time.strftime("%H:%M"),
        )
        await NotificationService.emit(EventType.APPOINTMENT_CREATED, row)
        return AppointmentResponse.model_validate(row)

    async def update_appointment(
        self,
        appointment_id: UUID,
        actor: Actor,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Apply a partial update.

        Date/time changes re-run slot resolution, status changes go through
        the state machine, and symptom changes notify the assigned staff.

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the actor may not modify it
            ValidationException: Illegal status target or edit of a closed appointment
            ConflictException: New slot taken concurrently
        """
        row = await self._get_row(appointment_id)
        if not (is_owner(actor, row) or can_manage(actor, row)):
            raise ForbiddenException("Access denied to this appointment")

        fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if not fields:
            return AppointmentResponse.model_validate(row)

        current = parse_status(row["status"])
        values: dict[str, Any] = {}
        target: AppointmentStatus | None = None

        if "status" in fields:
            target = parse_status(fields["status"])
            if target is not current:
                values.update(self._transition_values(actor, row, target))
            else:
                target = None

        if "symptoms" in fields and fields["symptoms"] != row["symptoms"]:
            if current is AppointmentStatus.COMPLETED:
                raise ValidationException("Symptoms of a completed appointment cannot change")
            values["symptoms"] = fields["symptoms"]

        if "priority" in fields:
            values["priority"] = fields["priority"].value
        if "notes" in fields:
            values["notes"] = fields["notes"]

        new_date = fields.get("requested_date", row["requested_date"])
        new_time = fields.get("requested_time", row["requested_time"])
        reschedule = (new_date, new_time) != (row["requested_date"], row["requested_time"])

        if reschedule:
            if current not in LIVE_STATUSES or (target and target not in LIVE_STATUSES):
                raise ValidationException("Only open appointments can be rescheduled")
            slot_time = await self._resolve_slot(
                new_date, new_time, exclude_appointment_id=appointment_id
            )
            updated = await self.booking.move(
                appointment_id,
                new_date,
                slot_time,
                extra_values=values,
                expected_status=current.value,
            )
        elif values:
            updated = await self._update_row(appointment_id, values, current.value)
        else:
            return AppointmentResponse.model_validate(row)

        logger.info(
            "appointment_updated",
            appointment_id=str(appointment_id),
            fields=sorted(values) + (["requested_date", "requested_time"] if reschedule else []),
        )

        if "symptoms" in values:
            await NotificationService.emit(EventType.SYMPTOMS_UPDATED, updated)
        if target in STATUS_EVENTS:
            await NotificationService.emit(STATUS_EVENTS[target], updated)

        return AppointmentResponse.model_validate(updated)

    async def approve(
        self,
        appointment_id: UUID,
        actor: Actor,
        data: ApproveRequest | None = None,
    ) -> AppointmentResponse:
        """
        Approve a pending appointment, optionally pinning a different slot.

        Raises:
            ForbiddenException: Actor is not staff/admin or not the assigned provider
            ValidationException: Appointment is not pending
            ConflictException: Override slot taken concurrently
        """
        require(actor, Operation.APPROVE)
        row = await self._get_row(appointment_id)
        values = self._transition_values(actor, row, AppointmentStatus.APPROVED)

        data = data or ApproveRequest()
        new_date = data.requested_date or row["requested_date"]
        new_time = data.requested_time or row["requested_time"]

        if (new_date, new_time) != (row["requested_date"], row["requested_time"]):
            updated = await self.booking.move(
                appointment_id,
                new_date,
                new_time,
                extra_values=values,
                expected_status=row["status"],
            )
        else:
            updated = await self._update_row(appointment_id, values, row["status"])

        logger.info(
            "appointment_approved",
            appointment_id=str(appointment_id),
            staff_id=str(actor.id),
        )
        await NotificationService.emit(EventType.APPOINTMENT_APPROVED, updated)
        return AppointmentResponse.model_validate(updated)

    async def reject(
        self,
        appointment_id: UUID,
        actor: Actor,
        data: RejectRequest | None = None,
    ) -> AppointmentResponse:
        """
        Reject a pending appointment, releasing its slot.

        Raises:
            ForbiddenException: Actor is not staff/admin or not the assigned provider
            ValidationException: Appointment is not pending
        """
        require(actor, Operation.REJECT)
        row = await self._get_row(appointment_id)
        values = self._transition_values(actor, row, AppointmentStatus.REJECTED)

        reason = data.reason if data else None
        if reason:
            values["rejection_reason"] = reason

        updated = await self._update_row(appointment_id, values, row["status"])

        logger.info(
            "appointment_rejected",
            appointment_id=str(appointment_id),
            staff_id=str(actor.id),
        )
        await NotificationService.emit(EventType.APPOINTMENT_REJECTED, updated, reason)
        return AppointmentResponse.model_validate(updated)

    async def delete_appointment(self, appointment_id: UUID, actor: Actor) -> None:
        """
        Soft-delete an appointment, cancelling it first if it is still live.

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the actor is not eligible to delete it
            ValidationException: If the appointment is completed
        """
        row = await self._get_row(appointment_id)
        if not can_delete(actor, row):
            raise ForbiddenException("Not permitted to delete this appointment")
        if row["status"] == AppointmentStatus.COMPLETED.value:
            raise ValidationException("Completed appointments cannot be deleted")

        now = datetime.now(UTC)
        values: dict[str, Any] = {"deleted_at": now}
        was_live = parse_status(row["status"]) in LIVE_STATUSES
        if was_live:
            values["status"] = AppointmentStatus.CANCELLED.value
            values["cancelled_at"] = now

        updated = await self._update_row(appointment_id, values, row["status"])

        logger.info(
            "appointment_deleted",
            appointment_id=str(appointment_id),
            actor_id=str(actor.id),
            actor_role=actor.role.value,
        )
        if was_live:
            await NotificationService.emit(EventType.APPOINTMENT_CANCELLED, updated)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If actor doesn't have access
        """
        row = await self._get_row(appointment_id)
        if not can_view(actor, row):
            raise ForbiddenException("Access denied to this appointment")
        return AppointmentResponse.model_validate(row)

    async def list_appointments(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the actor with filtering and pagination.

        Requesters see their own appointments, staff the ones assigned to
        them, admins everything.
        """
        conditions = [appointments.c.deleted_at.is_(None)]

        if actor.role is Role.REQUESTER:
            conditions.append(appointments.c.requester_id == actor.id)
        elif actor.role is Role.STAFF:
            conditions.append(appointments.c.assigned_staff_id == actor.id)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)
        if filters.from_date:
            conditions.append(appointments.c.requested_date >= filters.from_date)
        if filters.to_date:
            conditions.append(appointments.c.requested_date <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(
                appointments.c.requested_date.desc(),
                appointments.c.requested_time.desc(),
            )
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(dict(row)) for row in result.mappings()],
        )

    async def pending_queue(self, actor: Actor) -> list[AppointmentResponse]:
        """
        Pending appointments in handling order, derived on every read.

        Order: priority (high first), requested date, requested time,
        creation time. Staff see unassigned work plus their own.
        """
        require(actor, Operation.VIEW_QUEUE)

        conditions = [
            appointments.c.status == AppointmentStatus.PENDING.value,
            appointments.c.deleted_at.is_(None),
        ]
        if actor.is_staff:
            conditions.append(
                or_(
                    appointments.c.assigned_staff_id.is_(None),
                    appointments.c.assigned_staff_id == actor.id,
                )
            )

        priority_rank = case(PRIORITY_RANK, value=appointments.c.priority, else_=len(PRIORITY_RANK))
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(
                priority_rank,
                appointments.c.requested_date,
                appointments.c.requested_time,
                appointments.c.created_at,
            )
        )
        result = await self.db.execute(stmt)
        return [AppointmentResponse.model_validate(dict(row)) for row in result.mappings()]
