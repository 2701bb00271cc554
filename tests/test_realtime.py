import asyncio
import uuid

import pytest

from app.realtime.live_view import OrderLiveView
from app.realtime.notifier import ChangeEvent, ChangeNotifier


@pytest.mark.asyncio
async def test_publish_reaches_only_matching_channel() -> None:
    notifier = ChangeNotifier(queue_size=10)
    order_a, order_b = uuid.uuid4(), uuid.uuid4()
    students_a = await notifier.subscribe(order_a, ["students"])
    everything_b = await notifier.subscribe(order_b)

    event = await notifier.publish("students", order_a, "UPDATE", uuid.uuid4())
    await notifier.publish("orders", order_a)

    assert students_a.drain() == [event]
    assert everything_b.pending() == 0
    assert notifier.subscriber_count() == 2
    assert notifier.subscriber_count(order_a) == 1

    await students_a.close()
    await everything_b.close()
    assert notifier.get_stats()["subscriptions"] == 0
    assert notifier.get_stats()["channels"] == {}


@pytest.mark.asyncio
async def test_full_queue_drops_oldest_hint() -> None:
    notifier = ChangeNotifier(queue_size=2)
    order_id = uuid.uuid4()
    sub = await notifier.subscribe(order_id, ["orders"])

    events = [await notifier.publish("orders", order_id) for _ in range(3)]

    assert [e.sequence for e in sub.drain()] == [events[1].sequence, events[2].sequence]
    assert sub.dropped == 1
    await sub.close()


@pytest.mark.asyncio
async def test_unknown_table_is_rejected() -> None:
    notifier = ChangeNotifier()
    with pytest.raises(ValueError):
        await notifier.subscribe(uuid.uuid4(), ["payments"])


@pytest.mark.asyncio
async def test_get_times_out_with_none() -> None:
    notifier = ChangeNotifier()
    sub = await notifier.subscribe(uuid.uuid4())
    assert await sub.get(timeout=0.01) is None
    await sub.close()


@pytest.mark.asyncio
async def test_sequences_increase() -> None:
    notifier = ChangeNotifier()
    order_id = uuid.uuid4()
    first = await notifier.publish("orders", order_id)
    second = await notifier.publish("classes", order_id)
    assert second.sequence > first.sequence
    assert first.to_dict()["order_id"] == str(order_id)


@pytest.mark.asyncio
async def test_live_view_refreshes_on_change() -> None:
    order_id = uuid.uuid4()
    state = {"served": 0}

    async def loader(oid):
        return {"order_id": str(oid), "served_students": state["served"]}

    view = OrderLiveView(order_id, loader)
    envelope = await view.refresh()
    assert envelope["view"]["served_students"] == 0
    assert envelope["stale"] is False
    assert envelope["version"] == 1

    state["served"] = 2
    envelope = await view.on_change(ChangeEvent(table="students", order_id=order_id, action="UPDATE", sequence=7))
    assert envelope["view"]["served_students"] == 2
    assert envelope["version"] == 2
    assert envelope["last_event_sequence"] == 7


@pytest.mark.asyncio
async def test_live_view_keeps_last_known_view_when_loader_fails() -> None:
    order_id = uuid.uuid4()
    calls = {"n": 0}

    async def loader(oid):
        calls["n"] += 1
        if calls["n"] > 1:
            raise ConnectionError("database unavailable")
        return {"served_students": 1}

    view = OrderLiveView(order_id, loader)
    await view.refresh()

    envelope = await view.on_change(ChangeEvent(table="orders", order_id=order_id, action="UPDATE", sequence=3))
    assert envelope["view"] == {"served_students": 1}
    assert envelope["stale"] is True
    assert envelope["version"] == 1
    assert view.last_error == "database unavailable"


@pytest.mark.asyncio
async def test_live_view_reports_absent_order() -> None:
    async def loader(oid):
        return None

    view = OrderLiveView(uuid.uuid4(), loader)
    envelope = await view.refresh()
    assert envelope["absent"] is True
    assert envelope["view"] is None
    assert envelope["stale"] is False


@pytest.mark.asyncio
async def test_concurrent_subscribers_all_receive_hint() -> None:
    notifier = ChangeNotifier()
    order_id = uuid.uuid4()
    subs = await asyncio.gather(*[notifier.subscribe(order_id, ["students"]) for _ in range(5)])
    await notifier.publish("students", order_id)
    assert all(s.pending() == 1 for s in subs)
    for s in subs:
        await s.close()
