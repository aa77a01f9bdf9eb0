"""Actor roles and per-operation permission tables."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from app.core.exceptions import ForbiddenException
from app.schemas.appointments import AppointmentStatus


class Role(str, Enum):
    """Closed set of actor roles."""

    REQUESTER = "requester"
    STAFF = "staff"
    ADMIN = "admin"


class Operation(str, Enum):
    """Role-gated scheduling operations."""

    CREATE_ON_BEHALF = "create_on_behalf"
    CHOOSE_EXPLICIT_SLOT = "choose_explicit_slot"
    APPROVE = "approve"
    REJECT = "reject"
    VIEW_QUEUE = "view_queue"
    MANAGE_BLACKOUTS = "manage_blackouts"
    MANAGE_PROVIDERS = "manage_providers"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller of a scheduling operation."""

    id: UUID
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role is Role.STAFF

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


OPERATION_ROLES: dict[Operation, frozenset[Role]] = {
    Operation.CREATE_ON_BEHALF: frozenset({Role.STAFF, Role.ADMIN}),
    Operation.CHOOSE_EXPLICIT_SLOT: frozenset({Role.STAFF, Role.ADMIN}),
    Operation.APPROVE: frozenset({Role.STAFF, Role.ADMIN}),
    Operation.REJECT: frozenset({Role.STAFF, Role.ADMIN}),
    Operation.VIEW_QUEUE: frozenset({Role.STAFF, Role.ADMIN}),
    Operation.MANAGE_BLACKOUTS: frozenset({Role.ADMIN}),
    Operation.MANAGE_PROVIDERS: frozenset({Role.ADMIN}),
}

_STAFF_TARGETS = frozenset(
    {
        AppointmentStatus.APPROVED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }
)

STATUS_TARGETS_BY_ROLE: dict[Role, frozenset[AppointmentStatus]] = {
    Role.REQUESTER: frozenset({AppointmentStatus.CANCELLED}),
    Role.STAFF: _STAFF_TARGETS,
    Role.ADMIN: _STAFF_TARGETS,
}


def is_allowed(actor: Actor, operation: Operation) -> bool:
    """Check whether the actor's role may perform an operation."""
    return actor.role in OPERATION_ROLES[operation]


def require(actor: Actor, operation: Operation) -> None:
    """
    Ensure the actor's role may perform an operation.

    Raises:
        ForbiddenException: If the role is not in the operation's table
    """
    if not is_allowed(actor, operation):
        raise ForbiddenException(
            f"Role '{actor.role.value}' may not perform '{operation.value}'"
        )


def require_status_target(actor: Actor, target: AppointmentStatus) -> None:
    """
    Ensure the actor's role may drive an appointment to ``target``.

    Raises:
        ForbiddenException: If the role cannot set the target status
    """
    if target not in STATUS_TARGETS_BY_ROLE[actor.role]:
        raise ForbiddenException(
            f"Role '{actor.role.value}' may not set status '{target.value}'"
        )


def is_owner(actor: Actor, appointment: Mapping[str, Any]) -> bool:
    return appointment["requester_id"] == actor.id


def is_assigned_staff(actor: Actor, appointment: Mapping[str, Any]) -> bool:
    return actor.is_staff and appointment["assigned_staff_id"] == actor.id


def can_view(actor: Actor, appointment: Mapping[str, Any]) -> bool:
    """Owner, assigned staff, any staff for unassigned work, or admin."""
    if actor.is_admin or is_owner(actor, appointment):
        return True
    if actor.is_staff:
        return appointment["assigned_staff_id"] in (None, actor.id)
    return False


def can_manage(actor: Actor, appointment: Mapping[str, Any]) -> bool:
    """Whether staff/admin may drive status changes on this appointment."""
    if actor.is_admin:
        return True
    return actor.is_staff and appointment["assigned_staff_id"] in (None, actor.id)


def can_delete(actor: Actor, appointment: Mapping[str, Any]) -> bool:
    """
    Deletion eligibility, ignoring the completed-status rule.

    The owner may delete their own appointment. Staff may delete a pending
    appointment or one assigned to them. Admins may delete any appointment.
    """
    if actor.is_admin:
        return True
    if actor.role is Role.REQUESTER:
        return is_owner(actor, appointment)
    return appointment["status"] == AppointmentStatus.PENDING.value or is_assigned_staff(
        actor, appointment
    )
