"""Care provider directory."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictException, NotFoundException
from app.core.redis_client import CacheManager
from app.models.appointments import appointments
from app.models.care_providers import care_providers
from app.schemas.appointments import LIVE_STATUSES
from app.schemas.providers import (
    CareProviderCreate,
    CareProviderDetail,
    CareProviderResponse,
    CareProviderUpdate,
)

logger = structlog.get_logger(__name__)


class ProviderService:
    """Service for provider records and their derived appointment load."""

    CACHE_PREFIX = "providers"

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @classmethod
    def _specialty_cache_key(cls, specialty_group: str) -> str:
        return f"{cls.CACHE_PREFIX}:active:{specialty_group}"

    def _invalidate(self) -> None:
        if self.cache:
            self.cache.delete_pattern(f"{self.CACHE_PREFIX}:*")

    async def create_provider(self, data: CareProviderCreate) -> CareProviderDetail:
        """
        Register a care provider.

        Raises:
            ConflictException: If a provider with this id already exists
        """
        now = datetime.now(UTC)
        try:
            result = await self.db.execute(
                insert(care_providers)
                .values(
                    id=data.id,
                    name=data.name,
                    specialty_group=data.specialty_group,
                    active=data.active,
                    weekly_shifts=data.weekly_shifts,
                    created_at=now,
                    updated_at=now,
                )
                .returning(care_providers)
            )
            row = result.mappings().one()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictException(f"Provider {data.id} already exists") from e

        self._invalidate()
        logger.info("provider_created", provider_id=str(data.id), specialty=data.specialty_group)
        return CareProviderDetail.model_validate(dict(row))

    async def get_provider(self, provider_id: UUID) -> CareProviderDetail:
        """
        Get a provider by id.

        Raises:
            NotFoundException: If the provider does not exist
        """
        result = await self.db.execute(
            select(care_providers).where(care_providers.c.id == provider_id)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Care provider not found")
        return CareProviderDetail.model_validate(dict(row))

    async def update_provider(
        self,
        provider_id: UUID,
        data: CareProviderUpdate,
    ) -> CareProviderDetail:
        """Update provider fields and drop cached directory entries."""
        update_values = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if not update_values:
            return await self.get_provider(provider_id)

        update_values["updated_at"] = datetime.now(UTC)
        result = await self.db.execute(
            update(care_providers)
            .where(care_providers.c.id == provider_id)
            .values(**update_values)
            .returning(care_providers)
        )
        row = result.mappings().first()
        if not row:
            await self.db.rollback()
            raise NotFoundException("Care provider not found")
        await self.db.commit()

        self._invalidate()
        logger.info("provider_updated", provider_id=str(provider_id), fields=sorted(update_values))
        return CareProviderDetail.model_validate(dict(row))

    async def list_providers(
        self,
        specialty_group: str | None = None,
        active_only: bool = False,
        include_load: bool = False,
    ) -> list[CareProviderResponse]:
        """List providers ordered by name, optionally with current load."""
        conditions = []
        if specialty_group:
            conditions.append(care_providers.c.specialty_group == specialty_group.strip().lower())
        if active_only:
            conditions.append(care_providers.c.active.is_(True))

        stmt = select(care_providers).order_by(care_providers.c.name, care_providers.c.id)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        result = await self.db.execute(stmt)
        providers = [CareProviderResponse.model_validate(dict(row)) for row in result.mappings()]

        if include_load and providers:
            loads = await self.current_loads([p.id for p in providers])
            for provider in providers:
                provider.current_load = loads.get(provider.id, 0)

        return providers

    async def active_providers_for(self, specialty_group: str) -> list[CareProviderResponse]:
        """
        Active providers in a specialty group, served from cache when possible.

        Load is never cached; callers combine this with ``current_loads``.
        """
        cache_key = self._specialty_cache_key(specialty_group)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return [CareProviderResponse.model_validate(item) for item in cached]

        providers = await self.list_providers(specialty_group=specialty_group, active_only=True)

        if self.cache:
            self.cache.set_json(
                cache_key,
                [p.model_dump(mode="json", exclude={"current_load"}) for p in providers],
                ttl=settings.provider_cache_ttl,
            )
        return providers

    async def current_loads(self, provider_ids: list[UUID]) -> dict[UUID, int]:
        """Count live appointments per provider at query time."""
        if not provider_ids:
            return {}
        stmt = (
            select(appointments.c.assigned_staff_id, func.count().label("load"))
            .where(
                and_(
                    appointments.c.assigned_staff_id.in_(provider_ids),
                    appointments.c.status.in_([s.value for s in LIVE_STATUSES]),
                    appointments.c.deleted_at.is_(None),
                )
            )
            .group_by(appointments.c.assigned_staff_id)
        )
        result = await self.db.execute(stmt)
        return {row.assigned_staff_id: row.load for row in result}
