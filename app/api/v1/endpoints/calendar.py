"""Calendar endpoints: slots and blackout dates."""

from datetime import date, time

from fastapi import APIRouter, Query, status

from app.core.permissions import Operation, require
from app.dependencies import CurrentActor, DatabaseSession
from app.schemas.calendar import (
    AvailableSlotsResponse,
    BlackoutDateCreate,
    BlackoutDateResponse,
    BlackoutDateResult,
    CalendarSlot,
)
from app.services.availability_service import AvailabilityService
from app.services.calendar_service import CalendarService

router = APIRouter()


@router.get(
    "/slots/{day}",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="Available slots on a date",
)
async def available_slots(
    day: date,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AvailableSlotsResponse:
    """
    Free grid slots on a date.

    Weekends and blackout dates return an empty list.
    """
    service = AvailabilityService(db)
    return AvailableSlotsResponse(date=day, slots=await service.available_slots(day))


@router.get(
    "/slots/{day}/nearest",
    response_model=CalendarSlot,
    status_code=status.HTTP_200_OK,
    summary="Nearest available slot",
)
async def nearest_slot(
    day: date,
    actor: CurrentActor,
    db: DatabaseSession,
    at: time = Query(..., alias="time"),
) -> CalendarSlot:
    """
    Resolve a time to the nearest free slot on the same date.

    Args:
        day: Calendar date
        actor: Authenticated caller
        db: Database session
        at: Requested time of day

    Returns:
        Chosen slot

    Raises:
        NotFoundException: If nothing on that date is free
    """
    service = AvailabilityService(db)
    return await service.find_nearest(day, at)


@router.get(
    "/blackout-dates",
    response_model=list[BlackoutDateResponse],
    status_code=status.HTTP_200_OK,
    summary="List blackout dates",
)
async def list_blackout_dates(
    actor: CurrentActor,
    db: DatabaseSession,
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    category: str | None = Query(None),
) -> list[BlackoutDateResponse]:
    service = CalendarService(db)
    return await service.list_blackout_dates(from_date, to_date, category)


@router.post(
    "/blackout-dates",
    response_model=BlackoutDateResult,
    status_code=status.HTTP_201_CREATED,
    summary="Add a blackout date",
)
async def add_blackout_date(
    data: BlackoutDateCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> BlackoutDateResult:
    """
    Black out a date (admin only).

    Every open appointment on that date is cancelled and its participants
    notified.
    """
    require(actor, Operation.MANAGE_BLACKOUTS)
    service = CalendarService(db)
    return await service.add_blackout_date(data, created_by=actor.id)


@router.delete(
    "/blackout-dates/{day}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a blackout date",
)
async def remove_blackout_date(
    day: date,
    actor: CurrentActor,
    db: DatabaseSession,
) -> None:
    require(actor, Operation.MANAGE_BLACKOUTS)
    service = CalendarService(db)
    await service.remove_blackout_date(day)
