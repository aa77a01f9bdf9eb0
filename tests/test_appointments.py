"""Tests for appointment endpoints."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.core.security import create_access_token
from app.services.notification_service import EventType, NotificationService

MONDAY = "2025-06-23"
SATURDAY = "2025-06-28"


async def _create(client: AsyncClient, headers: dict, payload: dict, **overrides) -> dict:
    response = await client.post(
        "/api/v1/appointments/",
        json={**payload, **overrides},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def published():
    """Capture published appointment events."""
    with patch.object(NotificationService, "publish", new=AsyncMock(return_value=0)) as mock:
        yield mock


def _event_types(published: AsyncMock) -> list[EventType]:
    return [c.args[0].event_type for c in published.call_args_list]


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_degrades_without_redis(client: AsyncClient) -> None:
    with (
        patch(
            "app.api.v1.endpoints.health.check_database_connection",
            new=AsyncMock(return_value=True),
        ),
        patch(
            "app.api.v1.endpoints.health.check_redis_connection",
            new=AsyncMock(return_value=False),
        ),
    ):
        response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["redis"] == "unhealthy"
    assert data["notifications"] == "disabled"


@pytest.mark.asyncio
async def test_requests_require_valid_token(client: AsyncClient) -> None:
    response = await client.get(
        "/api/v1/appointments/",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_role_claim_is_rejected(client: AsyncClient) -> None:
    token = create_access_token({"sub": str(uuid4()), "role": "superuser"})
    response = await client.get(
        "/api/v1/appointments/",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 401


# ----------------------------------------------------------------------
# Create
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_appointment(
    client: AsyncClient,
    requester,
    requester_headers: dict,
    physical_provider,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    data = await _create(client, requester_headers, appointment_payload)

    assert data["status"] == "pending"
    assert data["requested_date"] == MONDAY
    assert data["requested_time"] == "09:40:00"
    assert data["requester_id"] == str(requester.id)
    assert data["created_by"] == str(requester.id)
    assert data["assigned_staff_id"] == str(physical_provider.id)
    assert _event_types(published) == [EventType.APPOINTMENT_CREATED]


@pytest.mark.asyncio
async def test_create_resolves_to_nearest_slot(
    client: AsyncClient,
    requester_headers: dict,
    other_requester_headers: dict,
    appointment_payload: dict,
) -> None:
    await _create(client, requester_headers, appointment_payload)

    data = await _create(
        client, other_requester_headers, appointment_payload, requested_time="09:41"
    )
    assert data["requested_time"] == "10:00:00"


@pytest.mark.asyncio
async def test_create_without_matching_provider_stays_unassigned(
    client: AsyncClient,
    requester_headers: dict,
    physical_provider,
    appointment_payload: dict,
) -> None:
    data = await _create(
        client, requester_headers, appointment_payload, health_issue_category="Mental"
    )

    assert data["health_issue_category"] == "mental"
    assert data["assigned_staff_id"] is None


@pytest.mark.asyncio
async def test_create_with_explicit_staff(
    client: AsyncClient,
    requester_headers: dict,
    physical_provider,
    mental_provider,
    appointment_payload: dict,
) -> None:
    data = await _create(
        client, requester_headers, appointment_payload, staff_id=str(mental_provider.id)
    )
    assert data["assigned_staff_id"] == str(mental_provider.id)

    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "requested_time": "11:00", "staff_id": str(uuid4())},
        headers=requester_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_unknown_category(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "health_issue_category": "dental"},
        headers=requester_headers,
    )

    assert response.status_code == 422
    assert response.json()["allowed"] == ["mental", "physical"]


@pytest.mark.asyncio
async def test_create_missing_time(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
) -> None:
    payload = dict(appointment_payload)
    del payload["requested_time"]

    response = await client.post("/api/v1/appointments/", json=payload, headers=requester_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_on_weekend_has_no_slot(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "requested_date": SATURDAY},
        headers=requester_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_requester_cannot_pin_exact_slot_or_book_for_others(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
) -> None:
    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "exact_slot": True},
        headers=requester_headers,
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "requester_id": str(uuid4())},
        headers=requester_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_staff_books_exact_slot_on_behalf(
    client: AsyncClient,
    staff,
    staff_headers: dict,
    requester,
    appointment_payload: dict,
) -> None:
    data = await _create(
        client,
        staff_headers,
        appointment_payload,
        requester_id=str(requester.id),
        requested_time="13:20",
        exact_slot=True,
    )

    assert data["requester_id"] == str(requester.id)
    assert data["created_by"] == str(staff.id)
    assert data["requested_time"] == "13:20:00"


@pytest.mark.asyncio
async def test_exact_slot_conflict_and_off_grid(
    client: AsyncClient,
    staff_headers: dict,
    requester_headers: dict,
    appointment_payload: dict,
) -> None:
    await _create(client, requester_headers, appointment_payload)

    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "exact_slot": True},
        headers=staff_headers,
    )
    assert response.status_code == 409

    response = await client.post(
        "/api/v1/appointments/",
        json={**appointment_payload, "requested_time": "09:41", "exact_slot": True},
        headers=staff_headers,
    )
    assert response.status_code == 422


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_appointment_access(
    client: AsyncClient,
    requester_headers: dict,
    other_requester_headers: dict,
    staff_headers: dict,
    other_staff_headers: dict,
    admin_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    assert (await client.get(url, headers=requester_headers)).status_code == 200
    assert (await client.get(url, headers=staff_headers)).status_code == 200
    assert (await client.get(url, headers=admin_headers)).status_code == 200
    assert (await client.get(url, headers=other_requester_headers)).status_code == 403
    assert (await client.get(url, headers=other_staff_headers)).status_code == 403

    missing = await client.get(f"/api/v1/appointments/{uuid4()}", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_list_appointments_scoped_by_role(
    client: AsyncClient,
    requester_headers: dict,
    other_requester_headers: dict,
    staff_headers: dict,
    admin_headers: dict,
    appointment_payload: dict,
) -> None:
    await _create(client, requester_headers, appointment_payload)
    await _create(client, other_requester_headers, appointment_payload, requested_time="10:00")

    mine = (await client.get("/api/v1/appointments/", headers=requester_headers)).json()
    assert mine["total"] == 1

    assigned = (await client.get("/api/v1/appointments/", headers=staff_headers)).json()
    assert assigned["total"] == 2

    everything = (await client.get("/api/v1/appointments/", headers=admin_headers)).json()
    assert everything["total"] == 2
    # Newest slot first
    assert everything["items"][0]["requested_time"] == "10:00:00"

    filtered = await client.get(
        "/api/v1/appointments/",
        params={"status": "approved"},
        headers=admin_headers,
    )
    assert filtered.json()["total"] == 0


@pytest.mark.asyncio
async def test_pending_queue_order(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
) -> None:
    low = await _create(
        client, requester_headers, appointment_payload, requested_time="09:00", priority="low"
    )
    high_late = await _create(
        client, requester_headers, appointment_payload, requested_time="11:00", priority="high"
    )
    high_early = await _create(
        client, requester_headers, appointment_payload, requested_time="10:00", priority="high"
    )
    medium = await _create(client, requester_headers, appointment_payload, requested_time="09:20")

    response = await client.get("/api/v1/appointments/queue", headers=staff_headers)

    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [
        high_early["id"],
        high_late["id"],
        medium["id"],
        low["id"],
    ]


@pytest.mark.asyncio
async def test_requester_cannot_view_queue(client: AsyncClient, requester_headers: dict) -> None:
    response = await client.get("/api/v1/appointments/queue", headers=requester_headers)
    assert response.status_code == 403


# ----------------------------------------------------------------------
# Approve / reject
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approve_appointment(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/approve", headers=staff_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert _event_types(published)[-1] == EventType.APPOINTMENT_APPROVED

    again = await client.post(
        f"/api/v1/appointments/{created['id']}/approve", headers=staff_headers
    )
    assert again.status_code == 422


@pytest.mark.asyncio
async def test_approve_with_slot_override(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/approve",
        json={"requested_time": "14:00"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    assert response.json()["requested_time"] == "14:00:00"
    assert response.json()["status"] == "approved"


@pytest.mark.asyncio
async def test_approve_permissions(
    client: AsyncClient,
    requester_headers: dict,
    other_staff_headers: dict,
    admin_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}/approve"

    assert (await client.post(url, headers=requester_headers)).status_code == 403
    # Assigned to another provider
    assert (await client.post(url, headers=other_staff_headers)).status_code == 403
    assert (await client.post(url, headers=admin_headers)).status_code == 200


@pytest.mark.asyncio
async def test_staff_approving_unassigned_takes_it(
    client: AsyncClient,
    requester_headers: dict,
    other_staff,
    other_staff_headers: dict,
    appointment_payload: dict,
) -> None:
    # No physical provider exists, so this stays unassigned
    created = await _create(client, requester_headers, appointment_payload)
    assert created["assigned_staff_id"] is None

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/approve", headers=other_staff_headers
    )
    assert response.status_code == 200
    assert response.json()["assigned_staff_id"] == str(other_staff.id)


@pytest.mark.asyncio
async def test_reject_releases_slot(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/reject",
        json={"reason": "Please visit the emergency department"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "rejected"
    assert data["rejection_reason"] == "Please visit the emergency department"
    event = published.call_args_list[-1].args[0]
    assert event.event_type is EventType.APPOINTMENT_REJECTED
    assert event.reason == "Please visit the emergency department"

    slots = await client.get(f"/api/v1/calendar/slots/{MONDAY}", headers=requester_headers)
    assert "09:40:00" in [s["start_time"] for s in slots.json()["slots"]]

    approve = await client.post(
        f"/api/v1/appointments/{created['id']}/approve", headers=staff_headers
    )
    assert approve.status_code == 422


# ----------------------------------------------------------------------
# Update
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_symptoms_emits_event(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)

    response = await client.patch(
        f"/api/v1/appointments/{created['id']}",
        json={"symptoms": "Back pain now radiating to the left leg"},
        headers=requester_headers,
    )

    assert response.status_code == 200
    assert response.json()["symptoms"] == "Back pain now radiating to the left leg"
    assert _event_types(published)[-1] == EventType.SYMPTOMS_UPDATED


@pytest.mark.asyncio
async def test_update_reschedules_through_resolver(
    client: AsyncClient,
    requester_headers: dict,
    other_requester_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    await _create(client, other_requester_headers, appointment_payload, requested_time="11:00")

    # Own slot does not block a move within it
    same = await client.patch(
        f"/api/v1/appointments/{created['id']}",
        json={"requested_time": "09:45"},
        headers=requester_headers,
    )
    assert same.status_code == 200
    assert same.json()["requested_time"] == "09:40:00"

    # Occupied target resolves forward
    moved = await client.patch(
        f"/api/v1/appointments/{created['id']}",
        json={"requested_time": "11:00"},
        headers=requester_headers,
    )
    assert moved.status_code == 200
    assert moved.json()["requested_time"] == "11:20:00"


@pytest.mark.asyncio
async def test_requester_may_cancel_but_not_approve(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    forbidden = await client.patch(url, json={"status": "approved"}, headers=requester_headers)
    assert forbidden.status_code == 403

    cancelled = await client.patch(url, json={"status": "cancelled"}, headers=requester_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancelled_at"] is not None
    assert _event_types(published)[-1] == EventType.APPOINTMENT_CANCELLED


@pytest.mark.asyncio
async def test_update_unknown_status_names_allowed_set(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    unknown = await client.patch(url, json={"status": "done"}, headers=staff_headers)
    assert unknown.status_code == 422
    assert "completed" in unknown.json()["allowed"]

    illegal = await client.patch(url, json={"status": "completed"}, headers=staff_headers)
    assert illegal.status_code == 422
    assert illegal.json()["allowed"] == ["approved", "cancelled", "rejected"]


@pytest.mark.asyncio
async def test_full_lifecycle_to_completed(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    await client.post(f"{url}/approve", headers=staff_headers)
    scheduled = await client.patch(url, json={"status": "scheduled"}, headers=staff_headers)
    assert scheduled.json()["status"] == "scheduled"

    completed = await client.patch(url, json={"status": "completed"}, headers=staff_headers)
    assert completed.json()["status"] == "completed"

    edit = await client.patch(url, json={"symptoms": "Feeling better"}, headers=requester_headers)
    assert edit.status_code == 422


# ----------------------------------------------------------------------
# Delete
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_owner_deletes_appointment(
    client: AsyncClient,
    requester_headers: dict,
    appointment_payload: dict,
    published: AsyncMock,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    response = await client.delete(url, headers=requester_headers)

    assert response.status_code == 204
    assert (await client.get(url, headers=requester_headers)).status_code == 404
    assert _event_types(published)[-1] == EventType.APPOINTMENT_CANCELLED

    # Slot is free again
    again = await _create(client, requester_headers, appointment_payload)
    assert again["requested_time"] == "09:40:00"


@pytest.mark.asyncio
async def test_delete_permissions(
    client: AsyncClient,
    requester_headers: dict,
    other_requester_headers: dict,
    other_staff_headers: dict,
    staff_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"

    assert (await client.delete(url, headers=other_requester_headers)).status_code == 403

    await client.post(f"{url}/approve", headers=staff_headers)
    # Approved and assigned elsewhere
    assert (await client.delete(url, headers=other_staff_headers)).status_code == 403
    assert (await client.delete(url, headers=staff_headers)).status_code == 204


@pytest.mark.asyncio
async def test_completed_appointment_cannot_be_deleted(
    client: AsyncClient,
    requester_headers: dict,
    staff_headers: dict,
    admin_headers: dict,
    appointment_payload: dict,
) -> None:
    created = await _create(client, requester_headers, appointment_payload)
    url = f"/api/v1/appointments/{created['id']}"
    await client.post(f"{url}/approve", headers=staff_headers)
    await client.patch(url, json={"status": "completed"}, headers=staff_headers)

    assert (await client.delete(url, headers=requester_headers)).status_code == 422
    assert (await client.delete(url, headers=admin_headers)).status_code == 422
