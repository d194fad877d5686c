"""
Tests for the keyed lock registry
"""

import threading

from posflow.core.locks import KeyedLocks
from posflow.models.kitchen_ticket import KitchenTicketStatus
from posflow.services.orders import DraftItem, OrderDraft


def test_entry_dropped_after_release():
    locks = KeyedLocks()

    with locks.hold("order", 1):
        assert len(locks) == 1

    assert len(locks) == 0


def test_reentrant_hold():
    locks = KeyedLocks()

    with locks.hold("table", 7):
        with locks.hold("table", 7):
            assert len(locks) == 1
        assert len(locks) == 1

    assert len(locks) == 0


def test_entry_kept_while_another_thread_waits():
    locks = KeyedLocks()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def holder():
        with locks.hold("coupon", "WELCOME10"):
            entered.set()
            release.wait(timeout=5)
            order.append("first")

    def waiter():
        entered.wait(timeout=5)
        with locks.hold("coupon", "WELCOME10"):
            order.append("second")

    threads = [threading.Thread(target=holder), threading.Thread(target=waiter)]
    for thread in threads:
        thread.start()
    entered.wait(timeout=5)
    release.set()
    for thread in threads:
        thread.join()

    assert order == ["first", "second"]
    assert len(locks) == 0


def test_independent_keys_do_not_block():
    locks = KeyedLocks()
    acquired = threading.Event()

    def other():
        with locks.hold("table", 2):
            acquired.set()

    with locks.hold("table", 1):
        thread = threading.Thread(target=other)
        thread.start()
        assert acquired.wait(timeout=5)
        thread.join()


def test_registry_empty_after_service_operations(orders, kitchen, menu):
    for _ in range(3):
        order = orders.create(OrderDraft(
            items=[DraftItem(product_id=menu.burger.id)],
            customer_name="Ana",
            phone="555-0101",
        ))
        ticket = kitchen.for_order(order.id)[0]
        kitchen.advance_ticket(ticket.id, KitchenTicketStatus.IN_PROGRESS)
        orders.cancel(order.id)

    assert len(orders.locks) == 0
