"""Staff auto-assignment by specialty and current load."""

from collections.abc import Callable
from datetime import date, time

import structlog

from app.config import settings
from app.core.exceptions import NotFoundException
from app.schemas.providers import WEEKDAYS, CareProviderResponse
from app.services.provider_service import ProviderService

logger = structlog.get_logger(__name__)

ShiftFilter = Callable[[CareProviderResponse, date | None, time | None], bool]


def provider_on_shift(
    provider: CareProviderResponse,
    day: date | None,
    at: time | None,
) -> bool:
    """
    Check a provider's weekly shifts against a date and time.

    Providers without a shift schedule, and calls without a date, always
    pass. Without a time, any shift on that weekday passes.
    """
    if not provider.weekly_shifts or day is None:
        return True
    shifts = provider.weekly_shifts.get(WEEKDAYS[day.weekday()], [])
    if at is None:
        return bool(shifts)
    for shift in shifts:
        start_raw, _, end_raw = shift.partition("-")
        if time.fromisoformat(start_raw) <= at < time.fromisoformat(end_raw):
            return True
    return False


class AssignmentService:
    """
    Picks a provider for an appointment.

    Among active providers whose specialty group matches the health-issue
    category, the one with the fewest live appointments wins; ties go to
    name, then id. A shift filter is applied only when configured.
    """

    def __init__(
        self,
        providers: ProviderService,
        shift_filter: ShiftFilter | None = None,
    ):
        """Initialize with the provider directory and an optional shift filter."""
        self.providers = providers
        if shift_filter is None and settings.assignment_respect_shifts:
            shift_filter = provider_on_shift
        self.shift_filter = shift_filter

    async def assign(
        self,
        health_issue_category: str,
        day: date | None = None,
        at: time | None = None,
    ) -> CareProviderResponse:
        """
        Choose the least-loaded eligible provider.

        Args:
            health_issue_category: Category to match against specialty groups
            day: Appointment date (only used by a shift filter)
            at: Appointment time (only used by a shift filter)

        Returns:
            Chosen provider with ``current_load`` populated

        Raises:
            NotFoundException: If no active provider matches
        """
        candidates = await self.providers.active_providers_for(health_issue_category)
        if self.shift_filter is not None:
            candidates = [p for p in candidates if self.shift_filter(p, day, at)]

        if not candidates:
            raise NotFoundException(
                f"No active care provider for category '{health_issue_category}'"
            )

        loads = await self.providers.current_loads([p.id for p in candidates])
        chosen = min(
            candidates,
            key=lambda p: (loads.get(p.id, 0), p.name.lower(), str(p.id)),
        )
        chosen.current_load = loads.get(chosen.id, 0)

        logger.info(
            "staff_auto_assigned",
            provider_id=str(chosen.id),
            category=health_issue_category,
            load=chosen.current_load,
        )
        return chosen
