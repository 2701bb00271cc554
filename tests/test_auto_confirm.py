import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.orders.service import auto_confirm_stale_orders
from app.core.models import Order
from app.scripts import auto_confirm_orders

from conftest import make_token, sample_order_payload


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


async def _age(db: AsyncSession, order_id: str, hours: float, **values) -> None:
    await db.execute(
        update(Order)
        .where(Order.id == uuid.UUID(order_id))
        .values(submitted_at=NOW - timedelta(hours=hours), **values)
    )
    await db.commit()


async def _get(client: AsyncClient, headers, order_id: str):
    return (await client.get(f"/api/v1/orders/{order_id}", headers=headers)).json()


@pytest.mark.asyncio
async def test_only_stale_unconfirmed_orders_are_auto_confirmed(
    client: AsyncClient, db_session: AsyncSession, create_order, auth_headers, change_notifier
) -> None:
    stale = (await create_order(sample_order_payload("ORD-STALE")))["id"]
    recent = (await create_order(sample_order_payload("ORD-RECENT")))["id"]
    stamped = (await create_order(sample_order_payload("ORD-STAMPED")))["id"]
    await _age(db_session, stale, 30)
    await _age(db_session, recent, 2)
    await _age(db_session, stamped, 30, auto_confirmed_at=NOW - timedelta(hours=1))
    sub = await change_notifier.subscribe(uuid.UUID(stale), ["orders"])

    confirmed = await auto_confirm_stale_orders(db_session, now=NOW, cutoff_hours=24)
    assert confirmed == [uuid.UUID(stale)]

    order = await _get(client, auth_headers, stale)
    assert order["status"] == "AUTO_CONFIRMED"
    assert datetime.fromisoformat(order["auto_confirmed_at"].replace("Z", "+00:00")) == NOW
    assert (await _get(client, auth_headers, recent))["status"] == "SUBMITTED"
    assert (await _get(client, auth_headers, stamped))["status"] == "SUBMITTED"

    history = (await client.get(f"/api/v1/orders/{stale}/status-history", headers=auth_headers)).json()
    last = history[-1]
    assert (last["from_status"], last["to_status"]) == ("SUBMITTED", "AUTO_CONFIRMED")
    assert last["action"] == "order_auto_confirmed"
    assert last["performed_by"] is None
    assert last["performed_by_role"] == "SYSTEM"

    assert [e.table for e in sub.drain()] == ["orders"]
    await sub.close()

    # Second run finds nothing left to do
    assert await auto_confirm_stale_orders(db_session, now=NOW, cutoff_hours=24) == []


@pytest.mark.asyncio
async def test_unsubmitted_and_already_confirmed_orders_are_left_alone(
    client: AsyncClient, db_session: AsyncSession, create_order, auth_headers
) -> None:
    payload = sample_order_payload("ORD-DRAFT")
    payload["status"] = "UNSUBMITTED"
    draft = await create_order(payload)
    assert draft["submitted_at"] is None

    confirmed = (await create_order(sample_order_payload("ORD-MANUAL")))["id"]
    await _age(db_session, confirmed, 48)
    await client.post(
        f"/api/v1/orders/{confirmed}/transitions", json={"target_status": "CONFIRMED"}, headers=auth_headers
    )

    assert await auto_confirm_stale_orders(db_session, now=NOW, cutoff_hours=24) == []
    assert (await _get(client, auth_headers, draft["id"]))["status"] == "UNSUBMITTED"
    assert (await _get(client, auth_headers, confirmed))["status"] == "CONFIRMED"


@pytest.mark.asyncio
async def test_submitting_a_draft_starts_the_clock(client: AsyncClient, create_order, auth_headers) -> None:
    payload = sample_order_payload("ORD-LATER")
    payload["status"] = "UNSUBMITTED"
    order_id = (await create_order(payload))["id"]

    response = await client.post(
        f"/api/v1/orders/{order_id}/transitions", json={"target_status": "SUBMITTED"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["order"]["submitted_at"] is not None


@pytest.mark.asyncio
async def test_job_runs_across_tenants(
    client: AsyncClient,
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    create_order,
    auth_headers,
    monkeypatch,
) -> None:
    mine = (await create_order(sample_order_payload("ORD-A")))["id"]
    other_headers = {"Authorization": f"Bearer {make_token(uuid.uuid4())}"}
    response = await client.post("/api/v1/orders", json=sample_order_payload("ORD-B"), headers=other_headers)
    theirs = response.json()["id"]
    # Submitted two days before the real clock, so the job's default "now" applies
    real_now = datetime.now(timezone.utc)
    for order_id in (mine, theirs):
        await db_session.execute(
            update(Order)
            .where(Order.id == uuid.UUID(order_id))
            .values(submitted_at=real_now - timedelta(days=2))
        )
    await db_session.commit()

    monkeypatch.setattr(auto_confirm_orders, "AsyncSessionLocal", session_factory)
    confirmed = await auto_confirm_orders.run_auto_confirm()

    assert set(confirmed) == {uuid.UUID(mine), uuid.UUID(theirs)}
    assert (await _get(client, auth_headers, mine))["status"] == "AUTO_CONFIRMED"
    assert (await _get(client, other_headers, theirs))["status"] == "AUTO_CONFIRMED"
