"""
Tests for the in-process event bus
"""

import asyncio
import gc
import threading
import uuid

from posflow.core.events import (
    EventBus,
    OrderCreated,
    OrderStatusChanged,
    TicketCreated,
)


def order_created(**overrides) -> OrderCreated:
    data = dict(
        order_id=uuid.uuid4(),
        public_code="ABCD2345",
        take_mode="TAKEAWAY",
        total_cents=1300,
    )
    data.update(overrides)
    return OrderCreated(**data)


def test_subscribers_receive_their_event_type():
    bus = EventBus()
    created, changed = [], []
    bus.subscribe("OrderCreated", created.append)
    bus.subscribe("OrderStatusChanged", changed.append)

    event = order_created()
    bus.publish(event)

    assert created == [event]
    assert changed == []


def test_wildcard_receives_everything_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe("*", seen.append)

    events = [
        order_created(),
        TicketCreated(ticket_id=uuid.uuid4(), order_id=uuid.uuid4(), station="BAR", ticket_number="B001", item_count=1),
    ]
    bus.publish_all(events)

    assert seen == events


def test_failing_handler_does_not_stop_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("notifier down")

    bus.subscribe("OrderCreated", broken)
    bus.subscribe("OrderCreated", seen.append)

    event = order_created()
    bus.publish(event)

    assert seen == [event]


def test_async_handler_runs_in_background():
    bus = EventBus()
    seen = []
    done = threading.Event()

    async def notify(event):
        seen.append(event.public_code)
        done.set()

    bus.subscribe("OrderCreated", notify)
    bus.publish(order_created(public_code="ZXCV5678"))

    assert done.wait(timeout=5)
    assert seen == ["ZXCV5678"]


def test_slow_async_handler_does_not_block_publisher():
    bus = EventBus()
    release = threading.Event()
    finished = threading.Event()

    async def slow_push(event):
        while not release.is_set():
            await asyncio.sleep(0.01)
        finished.set()

    bus.subscribe("OrderCreated", slow_push)
    bus.publish(order_created())

    # publish returned while the handler is still waiting
    assert not finished.is_set()
    assert bus.in_flight == 1

    release.set()
    assert finished.wait(timeout=5)


def test_failing_async_handler_is_contained():
    bus = EventBus()
    done = threading.Event()

    async def broken(event):
        raise RuntimeError("push service down")

    async def healthy(event):
        done.set()

    bus.subscribe("OrderCreated", broken)
    bus.publish(order_created())

    bus.subscribe("OrderCreated", healthy)
    bus.publish(order_created())

    assert done.wait(timeout=5)


def test_async_handler_inside_running_loop_is_kept_alive():
    bus = EventBus()
    seen = []

    async def notify(event):
        await asyncio.sleep(0)
        seen.append(event.public_code)

    async def main():
        bus.subscribe("OrderCreated", notify)
        bus.publish(order_created(public_code="LOOP2345"))
        assert seen == []
        gc.collect()
        for _ in range(5):
            await asyncio.sleep(0)

    asyncio.run(main())

    assert seen == ["LOOP2345"]
    assert bus.in_flight == 0


def test_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe("OrderCreated", seen.append)
    bus.unsubscribe("OrderCreated", seen.append)

    bus.publish(order_created())

    assert seen == []


def test_clear_subscribers():
    bus = EventBus()
    seen = []
    bus.subscribe("*", seen.append)
    bus.clear_subscribers()

    bus.publish(order_created())

    assert seen == []


def test_event_serialization():
    actor = uuid.uuid4()
    order_id = uuid.uuid4()
    event = OrderStatusChanged(order_id=order_id, old_status="READY", new_status="DELIVERED", actor_id=actor)

    data = event.to_dict()

    assert data["event_type"] == "OrderStatusChanged"
    assert data["order_id"] == str(order_id)
    assert data["actor_id"] == str(actor)
    assert (data["old_status"], data["new_status"]) == ("READY", "DELIVERED")
    assert data["event_id"] == str(event.event_id)
    assert "occurred_at" in data


def test_optional_ids_serialize_as_none():
    data = order_created().to_dict()

    assert data["table_session_id"] is None
    assert data["actor_id"] is None
