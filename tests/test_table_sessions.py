"""
Tests for dine-in table sessions
"""

import pytest
import threading
import uuid

from sqlmodel import SQLModel, Session, select

from posflow.core.database import build_engine
from posflow.core.events import EventBus
from posflow.core.exceptions import (
    IllegalTransition,
    NotFound,
    SessionAlreadyOpen,
    SessionClosed,
    TableNotAvailable,
    ValidationError,
)
from posflow.models.table import Table, TableStatus
from posflow.models.table_session import PaymentMethod, TableSession
from posflow.services.orders import DraftItem, OrderDraft
from posflow.services.table_sessions import TableSessionManager


def dine_in(session_id, *items) -> OrderDraft:
    return OrderDraft(items=list(items), table_session_id=session_id)


# Opening

def test_open_session_occupies_table(db: Session, tables, table: Table):
    """Opening a session seats the guests and flips the table to OCCUPIED"""
    table_session = tables.open_session(table.id, guest_count=3, customer_name="Garcia")

    db.refresh(table)
    assert table.status == TableStatus.OCCUPIED
    assert table_session.is_open
    assert table_session.guest_count == 3
    assert table_session.customer_name == "Garcia"
    assert table_session.total_cents == 0
    assert tables.get_open_session(table.id).id == table_session.id


def test_open_session_on_reserved_table(db: Session, tables, reserved_table: Table):
    tables.open_session(reserved_table.id, guest_count=2)

    db.refresh(reserved_table)
    assert reserved_table.status == TableStatus.OCCUPIED


def test_second_open_session_rejected(db: Session, tables, table: Table):
    tables.open_session(table.id, guest_count=2)

    with pytest.raises(SessionAlreadyOpen):
        tables.open_session(table.id, guest_count=2)

    open_sessions = db.exec(
        select(TableSession).where(TableSession.table_id == table.id)
    ).all()
    assert len(open_sessions) == 1


@pytest.mark.parametrize("guests", [0, 5])
def test_guest_count_must_fit_table(db: Session, tables, table: Table, guests: int):
    with pytest.raises(ValidationError):
        tables.open_session(table.id, guest_count=guests)

    db.refresh(table)
    assert table.status == TableStatus.AVAILABLE


def test_out_of_service_table_not_available(tables, table: Table):
    tables.set_out_of_service(table.id)

    with pytest.raises(TableNotAvailable):
        tables.open_session(table.id, guest_count=2)


def test_inactive_table_not_available(db: Session, tables, table: Table):
    table.is_active = False
    db.add(table)
    db.commit()

    with pytest.raises(TableNotAvailable):
        tables.open_session(table.id, guest_count=2)


def test_open_session_unknown_table(tables, db: Session):
    with pytest.raises(NotFound):
        tables.open_session(uuid.uuid4(), guest_count=2)


def test_storage_conflict_reported_as_already_open(db: Session, tables, table: Table, monkeypatch):
    """A duplicate insert that slips past the checks hits the partial unique index"""
    tables.open_session(table.id, guest_count=2)
    table.status = TableStatus.AVAILABLE
    db.add(table)
    db.commit()

    monkeypatch.setattr(tables, "get_open_session", lambda table_id: None)

    with pytest.raises(SessionAlreadyOpen):
        tables.open_session(table.id, guest_count=2)


def test_concurrent_opens_seat_exactly_one(tmp_path):
    """Ten waiters racing for the same table: one wins, nine are told it is taken"""
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as setup:
        table = Table(name="R1", capacity=4)
        setup.add(table)
        setup.commit()
        table_id = table.id

    barrier = threading.Barrier(10)
    results = []

    def waiter():
        with Session(engine) as session:
            manager = TableSessionManager(session, bus=EventBus())
            barrier.wait()
            try:
                manager.open_session(table_id, guest_count=2)
                results.append("opened")
            except SessionAlreadyOpen:
                results.append("taken")

    threads = [threading.Thread(target=waiter) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("opened") == 1
    assert results.count("taken") == 9

    with Session(engine) as check:
        sessions = check.exec(select(TableSession).where(TableSession.table_id == table_id)).all()
        assert len(sessions) == 1
        assert check.get(Table, table_id).status == TableStatus.OCCUPIED
    engine.dispose()


# Billing and closing

def test_request_bill(db: Session, tables, orders, menu, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)

    tables.request_bill(table.id)
    db.refresh(table)
    assert table.status == TableStatus.BILL_REQUESTED

    # Guests may still order after asking for the check
    orders.create(dine_in(table_session.id, DraftItem(product_id=menu.soda.id)))
    db.refresh(table_session)
    assert table_session.total_cents == 300


def test_request_bill_requires_occupied_table(tables, table: Table):
    with pytest.raises(IllegalTransition):
        tables.request_bill(table.id)


def test_orders_accumulate_on_session(db: Session, tables, orders, menu, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)

    orders.create(dine_in(table_session.id, DraftItem(product_id=menu.burger.id, qty=2)))
    orders.create(dine_in(table_session.id, DraftItem(product_id=menu.soda.id)))

    db.refresh(table_session)
    assert table_session.subtotal_cents == 2300
    assert table_session.total_cents == 2300


def test_close_session_totals_live_orders(db: Session, tables, orders, menu, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)
    kept = orders.create(dine_in(table_session.id, DraftItem(product_id=menu.burger.id, qty=2)))
    dropped = orders.create(dine_in(table_session.id, DraftItem(product_id=menu.flan.id)))
    orders.cancel(dropped.id)

    closed = tables.close_session(table_session.id, PaymentMethod.CARD, tip_cents=500)

    db.refresh(table)
    assert table.status == TableStatus.AVAILABLE
    assert not closed.is_open
    assert closed.paid_at is not None
    assert closed.payment_method == PaymentMethod.CARD
    assert closed.subtotal_cents == kept.subtotal_cents
    assert closed.tip_cents == 500
    assert closed.total_cents == kept.total_cents + 500
    assert tables.get_open_session(table.id) is None


def test_close_session_twice_rejected(tables, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)
    tables.close_session(table_session.id, PaymentMethod.CASH)

    with pytest.raises(SessionClosed):
        tables.close_session(table_session.id, PaymentMethod.CASH)


def test_close_session_negative_tip_rejected(tables, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)

    with pytest.raises(ValidationError):
        tables.close_session(table_session.id, PaymentMethod.CASH, tip_cents=-1)


def test_closed_session_rejects_orders(tables, orders, menu, table: Table):
    table_session = tables.open_session(table.id, guest_count=2)
    tables.close_session(table_session.id, PaymentMethod.CASH)

    with pytest.raises(SessionClosed):
        orders.create(dine_in(table_session.id, DraftItem(product_id=menu.soda.id)))

    assert orders.list(session_id=table_session.id) == []


def test_table_reopens_after_close(tables, table: Table):
    first = tables.open_session(table.id, guest_count=2)
    tables.close_session(first.id, PaymentMethod.CASH)

    second = tables.open_session(table.id, guest_count=4)
    assert second.id != first.id
    assert second.is_open


# Availability

def test_reserve_and_release(db: Session, tables, table: Table):
    tables.reserve(table.id)
    db.refresh(table)
    assert table.status == TableStatus.RESERVED

    tables.release(table.id)
    db.refresh(table)
    assert table.status == TableStatus.AVAILABLE


def test_reserve_occupied_table_rejected(tables, table: Table):
    tables.open_session(table.id, guest_count=2)

    with pytest.raises(TableNotAvailable):
        tables.reserve(table.id)


def test_release_occupied_table_rejected(tables, table: Table):
    tables.open_session(table.id, guest_count=2)

    with pytest.raises(IllegalTransition):
        tables.release(table.id)


def test_list_tables_with_session_summary(tables, orders, menu, table: Table, reserved_table: Table):
    table_session = tables.open_session(table.id, guest_count=3)
    orders.create(dine_in(table_session.id, DraftItem(product_id=menu.burger.id)))

    overviews = {o.table.name: o for o in tables.list_tables()}

    assert overviews["A1"].open_session.id == table_session.id
    assert overviews["A1"].order_count == 1
    assert overviews["A1"].total_cents == 1000
    assert overviews["B2"].open_session is None
    assert overviews["B2"].order_count == 0


# Events

def test_session_events_published_after_commit(tables, table: Table, published):
    table_session = tables.open_session(table.id, guest_count=2)
    tables.close_session(table_session.id, PaymentMethod.TRANSFER, tip_cents=100)

    names = [e.__class__.__name__ for e in published]
    assert names == ["TableStatusChanged", "SessionOpened", "TableStatusChanged", "SessionClosed"]
    assert published[1].session_id == table_session.id
    assert published[3].payment_method == "TRANSFER"
    assert published[3].tip_cents == 100


def test_failed_open_publishes_nothing(tables, table: Table, published):
    with pytest.raises(ValidationError):
        tables.open_session(table.id, guest_count=10)

    assert published == []
