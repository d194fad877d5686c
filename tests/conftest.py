"""
Test configuration for pytest
"""

import pytest
import os
from datetime import datetime
from types import SimpleNamespace
from typing import Generator, List

# Test environment variables
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_JSON"] = "false"

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

import posflow.core.database  # noqa: F401  enables SQLite foreign keys
import posflow.models  # noqa: F401
from posflow.core.events import DomainEvent, EventBus
from posflow.core.locks import entity_locks
from posflow.models.combo import Combo, ComboItem
from posflow.models.menu_category import Category
from posflow.models.menu_item import Product
from posflow.models.kitchen_ticket import KitchenStation
from posflow.models.modifier import Modifier
from posflow.models.table import Table, TableStatus
from posflow.services.kitchen import KitchenTicketRouter
from posflow.services.orders import OrderLifecycle
from posflow.services.table_sessions import TableSessionManager


# One shared connection so API handlers running on worker threads see the same data
test_engine = create_engine(
    "sqlite://",
    echo=False,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Saturday 2026-10-17, 12:00 in Buenos Aires
NOW = datetime(2026, 10, 17, 15, 0, 0)


class Clock:
    """Settable clock for services"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a clean database session for each test"""
    # Create all tables
    SQLModel.metadata.create_all(test_engine)

    # Create session
    with Session(test_engine, expire_on_commit=False) as session:
        yield session

    # Cleanup
    SQLModel.metadata.drop_all(test_engine)
    entity_locks.clear()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(bus: EventBus) -> List[DomainEvent]:
    """Every event published on the test bus, in order"""
    events: List[DomainEvent] = []
    bus.subscribe("*", events.append)
    return events


@pytest.fixture
def tables(db: Session, bus: EventBus, clock: Clock) -> TableSessionManager:
    return TableSessionManager(db, bus=bus, clock=clock)


@pytest.fixture
def orders(db: Session, bus: EventBus, clock: Clock) -> OrderLifecycle:
    return OrderLifecycle(db, bus=bus, clock=clock)


@pytest.fixture
def kitchen(db: Session, bus: EventBus, clock: Clock) -> KitchenTicketRouter:
    return KitchenTicketRouter(db, bus=bus, clock=clock)


@pytest.fixture
def menu(db: Session) -> SimpleNamespace:
    """Small catalog: burgers on the grill, drinks at the bar, desserts with no station"""
    burgers = Category(name="Burgers", sort_order=1, default_station=KitchenStation.GRILL)
    drinks = Category(name="Drinks", sort_order=2, default_station=KitchenStation.BAR)
    desserts = Category(name="Desserts", sort_order=3)
    db.add_all([burgers, drinks, desserts])
    db.flush()

    cheese = Modifier(name="Extra cheese", price_delta_cents=200)
    bacon = Modifier(name="Bacon", price_delta_cents=300)
    retired = Modifier(name="Truffle", price_delta_cents=900, is_active=False)
    db.add_all([cheese, bacon, retired])
    db.flush()

    burger = Product(
        category_id=burgers.id,
        name="Classic Burger",
        base_price_cents=1000,
        double_price_cents=1500,
    )
    burger.modifiers = [cheese, bacon, retired]
    soda = Product(category_id=drinks.id, name="Soda", base_price_cents=300)
    flan = Product(category_id=desserts.id, name="Flan", base_price_cents=500)
    old_special = Product(category_id=burgers.id, name="Old Special", base_price_cents=800, is_active=False)
    db.add_all([burger, soda, flan, old_special])
    db.flush()

    combo = Combo(name="Burger + Soda", price_cents=1150)
    db.add(combo)
    db.flush()
    db.add_all([
        ComboItem(combo_id=combo.id, product_id=burger.id, qty=1),
        ComboItem(combo_id=combo.id, product_id=soda.id, qty=1),
    ])
    db.commit()

    return SimpleNamespace(
        burger=burger,
        soda=soda,
        flan=flan,
        old_special=old_special,
        cheese=cheese,
        bacon=bacon,
        retired=retired,
        combo=combo,
    )


@pytest.fixture
def table(db: Session) -> Table:
    """An available four-top"""
    table = Table(name="A1", capacity=4, sort_order=1)
    db.add(table)
    db.commit()
    db.refresh(table)
    return table


@pytest.fixture
def reserved_table(db: Session) -> Table:
    table = Table(name="B2", capacity=4, sort_order=2, status=TableStatus.RESERVED)
    db.add(table)
    db.commit()
    db.refresh(table)
    return table
