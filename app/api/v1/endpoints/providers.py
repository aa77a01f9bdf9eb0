"""Care provider directory endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.permissions import Operation, require
from app.dependencies import Cache, CurrentActor, DatabaseSession
from app.schemas.providers import (
    CareProviderCreate,
    CareProviderDetail,
    CareProviderResponse,
    CareProviderUpdate,
)
from app.services.provider_service import ProviderService

router = APIRouter()


@router.get(
    "/",
    response_model=list[CareProviderResponse],
    status_code=status.HTTP_200_OK,
    summary="List care providers",
)
async def list_providers(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    specialty_group: str | None = Query(None),
    active_only: bool = Query(False),
    include_load: bool = Query(False),
) -> list[CareProviderResponse]:
    """
    List care providers.

    Args:
        actor: Authenticated caller
        db: Database session
        cache: Provider directory cache
        specialty_group: Filter by specialty group
        active_only: Only active providers
        include_load: Populate ``current_load`` with live appointment counts

    Returns:
        Providers ordered by name
    """
    service = ProviderService(db, cache)
    return await service.list_providers(specialty_group, active_only, include_load)


@router.post(
    "/",
    response_model=CareProviderDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Register a care provider",
)
async def create_provider(
    data: CareProviderCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> CareProviderDetail:
    require(actor, Operation.MANAGE_PROVIDERS)
    service = ProviderService(db, cache)
    return await service.create_provider(data)


@router.get(
    "/{provider_id}",
    response_model=CareProviderDetail,
    status_code=status.HTTP_200_OK,
    summary="Get care provider",
)
async def get_provider(
    provider_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> CareProviderDetail:
    service = ProviderService(db)
    return await service.get_provider(provider_id)


@router.patch(
    "/{provider_id}",
    response_model=CareProviderDetail,
    status_code=status.HTTP_200_OK,
    summary="Update care provider",
)
async def update_provider(
    provider_id: UUID,
    data: CareProviderUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> CareProviderDetail:
    """Update a provider (admin only); cached directory entries are dropped."""
    require(actor, Operation.MANAGE_PROVIDERS)
    service = ProviderService(db, cache)
    return await service.update_provider(provider_id, data)
