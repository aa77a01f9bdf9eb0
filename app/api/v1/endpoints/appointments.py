"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Cache, CurrentActor, DatabaseSession
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    ApproveRequest,
    RejectRequest,
)
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Request an appointment.

    The requested time is resolved to the nearest free slot on the same
    date unless a staff member pins ``exact_slot``. A care provider is
    auto-assigned when ``staff_id`` is omitted.

    Args:
        data: Appointment request
        actor: Authenticated caller
        db: Database session
        cache: Provider directory cache

    Returns:
        Created appointment
    """
    service = AppointmentService(db, cache)
    return await service.create_appointment(actor, data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments visible to the caller.

    Args:
        actor: Authenticated caller
        db: Database session
        status_filter: Filter by status
        from_date: Earliest requested date
        to_date: Latest requested date
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    service = AppointmentService(db)
    return await service.list_appointments(actor, filters)


@router.get(
    "/queue",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Pending appointment queue",
)
async def pending_queue(
    actor: CurrentActor,
    db: DatabaseSession,
) -> list[AppointmentResponse]:
    """Pending appointments ordered by priority, date, time and arrival."""
    service = AppointmentService(db)
    return await service.pending_queue(actor)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, actor)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Partially update an appointment.

    Args:
        appointment_id: Appointment ID
        data: Fields to change; ``status`` goes through the lifecycle rules
        actor: Authenticated caller
        db: Database session
        cache: Provider directory cache

    Returns:
        Updated appointment
    """
    service = AppointmentService(db, cache)
    return await service.update_appointment(appointment_id, actor, data)


@router.post(
    "/{appointment_id}/approve",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Approve a pending appointment",
)
async def approve_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    data: ApproveRequest | None = None,
) -> AppointmentResponse:
    service = AppointmentService(db)
    return await service.approve(appointment_id, actor, data)


@router.post(
    "/{appointment_id}/reject",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Reject a pending appointment",
)
async def reject_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    data: RejectRequest | None = None,
) -> AppointmentResponse:
    service = AppointmentService(db)
    return await service.reject(appointment_id, actor, data)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> None:
    """
    Soft-delete an appointment, cancelling it if still open.

    Args:
        appointment_id: Appointment ID
        actor: Authenticated caller
        db: Database session
    """
    service = AppointmentService(db)
    await service.delete_appointment(appointment_id, actor)
