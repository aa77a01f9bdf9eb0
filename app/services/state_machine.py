"""Appointment status transitions."""

from app.core.exceptions import ValidationException
from app.schemas.appointments import TERMINAL_STATUSES, AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.APPROVED, AppointmentStatus.REJECTED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.APPROVED: frozenset(
        {AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.REJECTED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def _sorted_values(statuses: frozenset[AppointmentStatus] | set[AppointmentStatus]) -> list[str]:
    return sorted(s.value for s in statuses)


def parse_status(raw: str | AppointmentStatus) -> AppointmentStatus:
    """
    Parse a status name.

    Raises:
        ValidationException: If the status is unknown, naming the known set
    """
    if isinstance(raw, AppointmentStatus):
        return raw
    try:
        return AppointmentStatus(raw.strip().lower())
    except ValueError as e:
        raise ValidationException(
            f"Unknown status '{raw}'", allowed=_sorted_values(set(AppointmentStatus))
        ) from e


def is_terminal(status: str | AppointmentStatus) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def allowed_targets(current: str | AppointmentStatus) -> frozenset[AppointmentStatus]:
    return TRANSITIONS[parse_status(current)]


def validate_transition(
    current: str | AppointmentStatus,
    target: str | AppointmentStatus,
) -> AppointmentStatus:
    """
    Check that ``current -> target`` is a legal transition.

    Args:
        current: Current status
        target: Requested status

    Returns:
        The parsed target status

    Raises:
        ValidationException: If the target is unknown or not reachable from
            the current status; the message names the allowed targets
    """
    current_status = parse_status(current)
    target_status = parse_status(target)
    allowed = TRANSITIONS[current_status]
    if target_status not in allowed:
        raise ValidationException(
            f"Cannot move appointment from '{current_status.value}' to '{target_status.value}'",
            allowed=_sorted_values(allowed),
        )
    return target_status
