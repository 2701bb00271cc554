import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import AuditTrailEntry, Student


def _audit_payload(ref: str = "AUD-001"):
    return {
        "external_ref": ref,
        "school_name": "Riverside High",
        "classes": [
            {
                "name": "Form 1",
                "students": [
                    {"full_name": "Dana Diaz", "light_garment_count": 3, "dark_garment_count": 2},
                    {"full_name": "Eli Evans", "light_garment_count": 1, "dark_garment_count": 1},
                ],
            },
        ],
    }


async def _setup(client: AsyncClient, create_order, headers):
    order = await create_order(_audit_payload())
    order_id = order["id"]
    opened = await client.post(f"/api/v1/orders/{order_id}/audit", headers=headers)
    assert opened.status_code == 200, opened.text
    students = {s["full_name"]: s for s in opened.json()["submitted_data"]["students"]}
    return order_id, opened.json(), students


async def _edit_student(client: AsyncClient, headers, order_id: str, student_id: str, **counts):
    return await client.patch(f"/api/v1/orders/{order_id}/audit/students/{student_id}", json=counts, headers=headers)


@pytest.mark.asyncio
async def test_dark_count_edit_records_one_entry_and_flags_discrepancy(
    client: AsyncClient, create_order, auth_headers
) -> None:
    order_id, report, students = await _setup(client, create_order, auth_headers)
    dana = students["Dana Diaz"]
    assert dana["submitted_light_garment_count"] == 3
    assert dana["submitted_dark_garment_count"] == 2

    response = await _edit_student(
        client, auth_headers, order_id, dana["id"], total_light_garment_count=3, total_dark_garment_count=5
    )
    assert response.status_code == 200, response.text
    body = response.json()

    assert len(body["changes"]) == 1
    entry = body["changes"][0]
    assert entry["field"] == "total_dark_garment_count"
    assert entry["old_value"] == 2
    assert entry["new_value"] == 5
    assert entry["entity_type"] == "student"
    assert entry["entity_name"] == "Dana Diaz"
    assert entry["actor_name"] == "Test User"
    assert entry["sequence"] == 1

    assert body["report"]["discrepancies_found"] is True
    assert body["report"]["students_with_discrepancies"] == 1
    assert body["report"]["total_students_audited"] == 1
    assert [e["field"] for e in body["report"]["report_details"]["audit_trail"]] == ["total_dark_garment_count"]


@pytest.mark.asyncio
async def test_snapshot_is_frozen_once(client: AsyncClient, create_order, auth_headers) -> None:
    order_id, first, students = await _setup(client, create_order, auth_headers)
    await _edit_student(client, auth_headers, order_id, students["Eli Evans"]["id"], total_light_garment_count=4)

    again = await client.post(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)
    assert again.status_code == 200
    assert again.json()["id"] == first["id"]
    assert again.json()["submitted_data"] == first["submitted_data"]
    eli = [s for s in again.json()["submitted_data"]["students"] if s["full_name"] == "Eli Evans"][0]
    assert eli["submitted_light_garment_count"] == 1

    session = first["submitted_data"]["session"]
    assert session == {
        "total_students": 2,
        "total_garments": 7,
        "total_dark_garments": 3,
        "total_light_garments": 4,
        "total_classes": 1,
    }
    assert [c["name"] for c in first["submitted_data"]["classes"]] == ["Form 1"]
    assert [s["full_name"] for s in first["submitted_data"]["students"]] == ["Dana Diaz", "Eli Evans"]


@pytest.mark.asyncio
async def test_unchanged_values_record_nothing(
    client: AsyncClient, db_session: AsyncSession, create_order, auth_headers
) -> None:
    order_id, report, students = await _setup(client, create_order, auth_headers)
    dana = students["Dana Diaz"]

    response = await _edit_student(
        client, auth_headers, order_id, dana["id"], total_light_garment_count=3, total_dark_garment_count=2
    )
    assert response.status_code == 200
    assert response.json()["changes"] == []
    assert response.json()["report"]["students_with_discrepancies"] == 0
    assert response.json()["report"]["discrepancies_found"] is False
    # Saving still marks the student audited
    assert response.json()["report"]["total_students_audited"] == 1

    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/order", json={"total_students": 2}, headers=auth_headers
    )
    assert response.json()["changes"] == []

    count = (await db_session.execute(select(func.count(AuditTrailEntry.id)))).scalar_one()
    assert count == 0

    audited = (await db_session.execute(
        select(Student.is_audited, Student.submitted_dark_garment_count).where(Student.id == uuid.UUID(dana["id"]))
    )).one()
    assert audited == (True, 2)


@pytest.mark.asyncio
async def test_resolved_discrepancy_decrements_but_flag_stays(client: AsyncClient, create_order, auth_headers) -> None:
    order_id, report, students = await _setup(client, create_order, auth_headers)
    dana = students["Dana Diaz"]

    await _edit_student(client, auth_headers, order_id, dana["id"], total_dark_garment_count=5)
    # Saving the same discrepancy again does not double count
    body = (await _edit_student(client, auth_headers, order_id, dana["id"], total_dark_garment_count=6)).json()
    assert body["report"]["students_with_discrepancies"] == 1

    body = (await _edit_student(client, auth_headers, order_id, dana["id"], total_dark_garment_count=2)).json()
    assert body["report"]["students_with_discrepancies"] == 0
    assert body["report"]["discrepancies_found"] is True
    assert body["report"]["total_students_audited"] == 1
    assert [e["sequence"] for e in body["report"]["report_details"]["audit_trail"]] == [1, 2, 3]


@pytest.mark.asyncio
async def test_order_totals_edit_trails_derived_garments_and_keeps_queued_at(
    client: AsyncClient, create_order, auth_headers
) -> None:
    order = await create_order(_audit_payload())
    order_id = order["id"]
    when = (datetime.now(timezone.utc) + timedelta(days=2)).replace(microsecond=0)
    scheduled = (await client.post(
        f"/api/v1/orders/{order_id}/schedule", json={"scheduled_date": when.isoformat()}, headers=auth_headers
    )).json()["order"]
    await client.post(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)

    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/order", json={"total_dark_garments": 6}, headers=auth_headers
    )
    assert response.status_code == 200
    changes = {c["field"]: (c["old_value"], c["new_value"]) for c in response.json()["changes"]}
    assert changes == {"total_dark_garments": (3, 6), "total_garments": (7, 10)}

    updated = (await client.get(f"/api/v1/orders/{order_id}", headers=auth_headers)).json()
    assert updated["total_garments"] == 10
    assert updated["status"] == "QUEUED"
    assert updated["queued_at"] == scheduled["queued_at"]

    view = (await client.get(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)).json()
    session = {s["field"]: s for s in view["session"]}
    assert session["total_garments"]["submitted"] == 7
    assert session["total_garments"]["current"] == 10
    assert session["total_garments"]["difference"] == 3


@pytest.mark.asyncio
async def test_duration_display_follows_scheduled_estimate_after_totals_edit(
    client: AsyncClient, create_order, auth_headers
) -> None:
    order_id = (await create_order(_audit_payload()))["id"]
    when = (datetime.now(timezone.utc) + timedelta(days=2)).replace(microsecond=0)
    scheduled = (await client.post(
        f"/api/v1/orders/{order_id}/schedule", json={"scheduled_date": when.isoformat()}, headers=auth_headers
    )).json()["order"]
    assert scheduled["duration_display"] == "1 hours"
    await client.post(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)

    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/order", json={"total_dark_garments": 600}, headers=auth_headers
    )
    assert response.status_code == 200

    updated = (await client.get(f"/api/v1/orders/{order_id}", headers=auth_headers)).json()
    assert updated["total_garments"] == 604
    assert updated["estimated_duration_hours"] == scheduled["estimated_duration_hours"]
    assert updated["duration_display"] == scheduled["duration_display"]

    board = (await client.get("/api/v1/orders/queue", headers=auth_headers)).json()
    assert board["orders"][0]["duration_display"] == "1 hours"


@pytest.mark.asyncio
async def test_class_count_edit_shows_class_discrepancy(client: AsyncClient, create_order, auth_headers) -> None:
    order_id, report, _ = await _setup(client, create_order, auth_headers)
    class_id = report["submitted_data"]["classes"][0]["id"]

    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/classes/{class_id}",
        json={"total_students_to_serve_in_class": 3},
        headers=auth_headers,
    )
    assert response.status_code == 200
    entry = response.json()["changes"][0]
    assert (entry["entity_type"], entry["field"], entry["old_value"], entry["new_value"]) == (
        "class", "total_students_to_serve_in_class", 2, 3,
    )

    view = (await client.get(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)).json()
    assert view["classes"][0]["submitted_students_count"] == 2
    assert view["classes"][0]["current_students_count"] == 3
    assert view["classes"][0]["has_discrepancy"] is True
    # Class discrepancies are display-only
    assert view["report"]["students_with_discrepancies"] == 0


@pytest.mark.asyncio
async def test_sealed_report_rejects_edits(
    client: AsyncClient, db_session: AsyncSession, create_order, auth_headers
) -> None:
    order_id, report, students = await _setup(client, create_order, auth_headers)
    dana = students["Dana Diaz"]
    await _edit_student(client, auth_headers, order_id, dana["id"], total_dark_garment_count=4)

    sealed = await client.post(f"/api/v1/orders/{order_id}/audit/complete", headers=auth_headers)
    assert sealed.status_code == 200
    assert sealed.json()["status"] == "COMPLETED"
    assert sealed.json()["completed_at"] is not None

    twice = await client.post(f"/api/v1/orders/{order_id}/audit/complete", headers=auth_headers)
    assert twice.status_code == 200
    assert twice.json()["completed_at"] == sealed.json()["completed_at"]

    response = await _edit_student(client, auth_headers, order_id, dana["id"], total_dark_garment_count=9)
    assert response.status_code == 409
    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/order", json={"total_students": 5}, headers=auth_headers
    )
    assert response.status_code == 409

    trail = (await client.get(f"/api/v1/orders/{order_id}/audit/trail", headers=auth_headers)).json()
    assert len(trail) == 1
    dark = (await db_session.execute(
        select(Student.total_dark_garment_count).where(Student.id == uuid.UUID(dana["id"]))
    )).scalar_one()
    assert dark == 4
    order = (await client.get(f"/api/v1/orders/{order_id}", headers=auth_headers)).json()
    assert order["total_students"] == 2


@pytest.mark.asyncio
async def test_edits_require_an_opened_audit(client: AsyncClient, create_order, auth_headers) -> None:
    order_id = (await create_order(_audit_payload()))["id"]
    response = await client.patch(
        f"/api/v1/orders/{order_id}/audit/order", json={"total_students": 5}, headers=auth_headers
    )
    assert response.status_code == 404
    assert (await client.get(f"/api/v1/orders/{order_id}/audit", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_served_student_counts_cannot_exceed_printed(client: AsyncClient, create_order, auth_headers) -> None:
    order_id, _, students = await _setup(client, create_order, auth_headers)
    eli = students["Eli Evans"]
    await client.patch(
        f"/api/v1/orders/{order_id}/students/{eli['id']}/progress",
        json={"printed_light_garment_count": 1, "printed_dark_garment_count": 1, "is_served": True},
        headers=auth_headers,
    )

    response = await _edit_student(client, auth_headers, order_id, eli["id"], total_light_garment_count=2)
    assert response.status_code == 409
    response = await _edit_student(client, auth_headers, order_id, eli["id"], total_light_garment_count=0)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_export_contains_everything_for_rendering(client: AsyncClient, create_order, auth_headers) -> None:
    order_id, _, students = await _setup(client, create_order, auth_headers)
    await _edit_student(
        client, auth_headers, order_id, students["Dana Diaz"]["id"],
        total_dark_garment_count=5, auditor_notes="Two extra jumpers collected",
    )

    export = (await client.get(f"/api/v1/orders/{order_id}/audit/export", headers=auth_headers)).json()
    assert set(export) == {"report", "snapshot", "audit_trail", "student_audits", "class_discrepancies"}
    assert export["snapshot"]["session"]["total_dark_garments"] == 3
    assert len(export["audit_trail"]) == 1
    row = export["student_audits"][0]
    assert row["student_name"] == "Dana Diaz"
    assert row["class_name"] == "Form 1"
    assert (row["submitted_dark_garments"], row["collected_dark_garments"], row["dark_garments_discrepancy"]) == (2, 5, 3)
    assert row["has_discrepancy"] is True
    assert row["auditor_notes"] == "Two extra jumpers collected"
    assert export["class_discrepancies"][0]["has_discrepancy"] is False
