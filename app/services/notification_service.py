"""Appointment events and their delivery to users via FCM."""

from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from firebase_admin import messaging
from pydantic import BaseModel, Field

from app.config import settings
from app.core.firebase import get_firebase_app

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Domain events emitted by the scheduling engine."""

    APPOINTMENT_CREATED = "AppointmentCreated"
    SYMPTOMS_UPDATED = "SymptomsUpdated"
    APPOINTMENT_APPROVED = "AppointmentApproved"
    APPOINTMENT_REJECTED = "AppointmentRejected"
    APPOINTMENT_CANCELLED = "AppointmentCancelled"


class AppointmentEvent(BaseModel):
    """Everything a notification or email collaborator needs to render a message."""

    event_type: EventType
    appointment_id: UUID
    requester_id: UUID
    staff_id: UUID | None = None
    requested_date: date
    requested_time: time
    symptoms: str
    status: str
    reason: str | None = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(
        cls,
        event_type: EventType,
        row: Mapping[str, Any],
        reason: str | None = None,
    ) -> "AppointmentEvent":
        """Build an event from an ``appointments`` row mapping."""
        return cls(
            event_type=event_type,
            appointment_id=row["id"],
            requester_id=row["requester_id"],
            staff_id=row["assigned_staff_id"],
            requested_date=row["requested_date"],
            requested_time=row["requested_time"],
            symptoms=row["symptoms"],
            status=row["status"],
            reason=reason if reason is not None else row.get("rejection_reason"),
        )

    def recipients(self) -> list[UUID]:
        """Users notified about this event."""
        if self.event_type is EventType.SYMPTOMS_UPDATED:
            return [self.staff_id] if self.staff_id else []
        recipients = [self.requester_id]
        if self.staff_id and self.staff_id != self.requester_id:
            recipients.append(self.staff_id)
        return recipients


_TITLES = {
    EventType.APPOINTMENT_CREATED: "Appointment Requested",
    EventType.SYMPTOMS_UPDATED: "Symptoms Updated",
    EventType.APPOINTMENT_APPROVED: "Appointment Approved",
    EventType.APPOINTMENT_REJECTED: "Appointment Rejected",
    EventType.APPOINTMENT_CANCELLED: "Appointment Cancelled",
}


def build_message_text(event: AppointmentEvent) -> tuple[str, str]:
    """Return the (title, body) pair for an event."""
    when = f"{event.requested_date.isoformat()} at {event.requested_time.strftime('%H:%M')}"
    bodies = {
        EventType.APPOINTMENT_CREATED: f"Your appointment request for {when} was received.",
        EventType.SYMPTOMS_UPDATED: f"Symptoms were updated for the appointment on {when}.",
        EventType.APPOINTMENT_APPROVED: f"Your appointment on {when} has been approved.",
        EventType.APPOINTMENT_REJECTED: f"Your appointment request for {when} was rejected.",
        EventType.APPOINTMENT_CANCELLED: f"Your appointment on {when} has been cancelled.",
    }
    body = bodies[event.event_type]
    if event.reason:
        body = f"{body} Reason: {event.reason}"
    return _TITLES[event.event_type], body


def user_topic(user_id: UUID) -> str:
    """FCM topic every client of a user subscribes to."""
    return f"user_{user_id}"


class NotificationService:
    """Publishes appointment events to the notification collaborator.

    Delivery is best-effort. Nothing raised here may reach the scheduling
    transaction, which has already committed when ``publish`` runs.
    """

    @staticmethod
    def _send_to_user(user_id: UUID, title: str, body: str, data: dict[str, str]) -> str:
        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            topic=user_topic(user_id),
            android=messaging.AndroidConfig(priority="high"),
        )
        return messaging.send(message, app=get_firebase_app())

    @staticmethod
    async def publish(event: AppointmentEvent) -> int:
        """
        Deliver an event to all of its recipients.

        Args:
            event: Appointment event

        Returns:
            Number of successful deliveries
        """
        logger.info(
            "appointment_event",
            event_type=event.event_type.value,
            appointment_id=str(event.appointment_id),
            status=event.status,
        )

        if not settings.notifications_enabled:
            return 0

        title, body = build_message_text(event)
        data = {
            "event_type": event.event_type.value,
            "appointment_id": str(event.appointment_id),
            "date": event.requested_date.isoformat(),
            "time": event.requested_time.strftime("%H:%M"),
            "status": event.status,
        }

        delivered = 0
        for user_id in event.recipients():
            try:
                NotificationService._send_to_user(user_id, title, body, data)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "notification_delivery_failed",
                    event_type=event.event_type.value,
                    appointment_id=str(event.appointment_id),
                    user_id=str(user_id),
                    error=str(e),
                )

        return delivered

    @staticmethod
    async def emit(
        event_type: EventType,
        row: Mapping[str, Any],
        reason: str | None = None,
    ) -> None:
        """Build and publish an event for a committed appointment row. Never raises."""
        try:
            await NotificationService.publish(AppointmentEvent.from_row(event_type, row, reason))
        except Exception as e:
            logger.warning(
                "appointment_event_failed",
                event_type=event_type.value,
                appointment_id=str(row["id"]),
                error=str(e),
            )
