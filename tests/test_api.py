"""
API tests for the order pipeline endpoints
"""

import pytest
import uuid
from typing import List

from fastapi.testclient import TestClient
from sqlmodel import Session

from posflow.core.config import get_settings
from posflow.core.database import get_session
from posflow.core.events import DomainEvent, event_bus
from posflow.main import app

API = get_settings().API_V1_PREFIX


# Fixtures
@pytest.fixture
def client(db: Session):
    """Test client bound to the test database"""
    bind = db.get_bind()

    def override_get_session():
        with Session(bind, expire_on_commit=False) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def app_events() -> List[DomainEvent]:
    events: List[DomainEvent] = []
    event_bus.subscribe("*", events.append)
    yield events
    event_bus.clear_subscribers()


def item(product, **kwargs) -> dict:
    data = {"product_id": str(product.id)}
    data.update(kwargs)
    return data


def place_takeaway(client: TestClient, *items, **kwargs) -> dict:
    payload = {"items": list(items), "customer_name": "Ana", "phone": "+54 11 5555 0000"}
    payload.update(kwargs)
    response = client.post(f"{API}/orders", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "posflow-api"}


# Dine-in flow

def test_dine_in_flow(client: TestClient, menu, table, app_events):
    response = client.post(f"{API}/tables/{table.id}/open-session", json={"guest_count": 2, "customer_name": "Perez"})
    assert response.status_code == 201
    session_id = response.json()["id"]

    overview = client.get(f"{API}/tables").json()
    assert overview[0]["status"] == "OCCUPIED"
    assert overview[0]["open_session_id"] == session_id
    assert overview[0]["guest_count"] == 2

    response = client.post(
        f"{API}/table-sessions/{session_id}/orders",
        json={"items": [item(menu.burger, qty=2), item(menu.soda)]},
    )
    assert response.status_code == 201
    order = response.json()
    assert order["take_mode"] == "DINE_IN"
    assert order["channel"] == "DINE_IN"
    assert order["customer_name"] == "Perez"
    assert order["total_cents"] == 2300
    assert {t["station"] for t in order["tickets"]} == {"GRILL", "BAR"}

    grill = next(t for t in order["tickets"] if t["station"] == "GRILL")
    response = client.put(f"{API}/kitchen-tickets/{grill['id']}/status", json={"status": "IN_PROGRESS"})
    assert response.status_code == 200
    assert response.json()["started_at"] is not None
    assert client.get(f"{API}/orders/{order['id']}").json()["status"] == "IN_PREP"

    response = client.post(f"{API}/tables/{table.id}/request-bill")
    assert response.json()["status"] == "BILL_REQUESTED"

    response = client.post(
        f"{API}/table-sessions/{session_id}/close",
        json={"payment_method": "CASH", "tip_cents": 200},
    )
    assert response.status_code == 200
    closed = response.json()
    assert closed["total_cents"] == 2500
    assert closed["closed_at"] is not None

    detail = client.get(f"{API}/table-sessions/{session_id}").json()
    assert [o["id"] for o in detail["orders"]] == [order["id"]]
    assert client.get(f"{API}/tables").json()[0]["status"] == "AVAILABLE"

    names = [e.__class__.__name__ for e in app_events]
    assert names.count("SessionOpened") == 1
    assert names.count("OrderCreated") == 1
    assert names.count("SessionClosed") == 1


def test_open_session_twice_conflicts(client: TestClient, table):
    client.post(f"{API}/tables/{table.id}/open-session", json={"guest_count": 2})

    response = client.post(f"{API}/tables/{table.id}/open-session", json={"guest_count": 2})

    assert response.status_code == 409
    assert response.json()["error"] == "session_already_open"


def test_open_session_bad_guest_count(client: TestClient, table):
    response = client.post(f"{API}/tables/{table.id}/open-session", json={"guest_count": 0})

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_unknown_table(client: TestClient):
    response = client.post(f"{API}/tables/{uuid.uuid4()}/open-session", json={"guest_count": 2})

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_dine_in_routes_hidden_when_disabled(client: TestClient, menu, table, monkeypatch):
    monkeypatch.setattr(get_settings(), "ENABLE_DINE_IN", False)

    assert client.get(f"{API}/tables").status_code == 404
    assert client.post(f"{API}/tables/{table.id}/open-session", json={"guest_count": 2}).status_code == 404

    response = client.post(f"{API}/orders", json={
        "items": [item(menu.soda)],
        "table_session_id": str(uuid.uuid4()),
    })
    assert response.status_code == 404

    # Off-premise ordering is unaffected
    place_takeaway(client, item(menu.soda))


# Orders

def test_create_order_prices_server_side(client: TestClient, menu):
    order = place_takeaway(
        client,
        item(menu.burger, qty=2, size="DOUBLE", modifier_ids=[str(menu.cheese.id)], unit_price_cents=1),
    )

    assert order["subtotal_cents"] == 3400
    assert order["status"] == "CREATED"
    assert order["items"][0]["modifiers_snapshot"]["size"] == "DOUBLE"


def test_create_order_mixed_units(client: TestClient, menu):
    order = place_takeaway(client, item(
        menu.burger,
        qty=2,
        same_config=False,
        units=[
            {"size": "DOUBLE", "modifier_ids": [str(menu.bacon.id)]},
            {"size": "SINGLE"},
        ],
    ))

    assert order["subtotal_cents"] == 2800
    assert len(order["items"][0]["modifiers_snapshot"]["units"]) == 2


def test_create_order_records_actor(client: TestClient, menu):
    actor = uuid.uuid4()
    response = client.post(
        f"{API}/orders",
        json={"items": [item(menu.flan)], "customer_name": "Ana", "phone": "1"},
        headers={"X-User-ID": str(actor)},
    )

    assert response.status_code == 201
    assert response.json()["created_by_user_id"] == str(actor)


def test_malformed_actor_header(client: TestClient, menu):
    response = client.post(
        f"{API}/orders",
        json={"items": [item(menu.flan)], "customer_name": "Ana", "phone": "1"},
        headers={"X-User-ID": "waiter-7"},
    )
    assert response.status_code == 400


@pytest.mark.parametrize("payload, error", [
    ({"items": [], "customer_name": "Ana", "phone": "1"}, "validation_error"),
    ({"items": [{"qty": 1}], "customer_name": "Ana", "phone": "1"}, "validation_error"),
    ({"items": [{"product_id": str(uuid.uuid4())}], "phone": "1"}, "validation_error"),
])
def test_invalid_orders_rejected(client: TestClient, menu, payload, error):
    response = client.post(f"{API}/orders", json=payload)

    assert response.status_code == 422
    assert response.json()["error"] == error


def test_invalid_configuration(client: TestClient, menu):
    response = client.post(f"{API}/orders", json={
        "items": [item(menu.soda, size="DOUBLE")],
        "customer_name": "Ana",
        "phone": "1",
    })

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_configuration"


def test_request_body_schema_errors(client: TestClient):
    response = client.post(f"{API}/orders", json={"customer_name": "Ana"})
    assert response.status_code == 422


def test_order_status_lifecycle(client: TestClient, menu):
    order = place_takeaway(client, item(menu.flan))

    response = client.put(f"{API}/orders/{order['id']}/status", json={"status": "CONFIRMED"})
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = client.put(f"{API}/orders/{order['id']}/status", json={"status": "DELIVERED"})
    assert response.status_code == 409
    assert response.json()["error"] == "illegal_transition"

    history = client.get(f"{API}/orders/{order['id']}/history").json()
    assert [h["status"] for h in history] == ["CREATED", "CONFIRMED"]
    assert [h["sequence"] for h in history] == [1, 2]


def test_cancel_order(client: TestClient, menu):
    order = place_takeaway(client, item(menu.burger))

    response = client.post(f"{API}/orders/{order['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["tickets"][0]["status"] == "CANCELLED"

    assert client.post(f"{API}/orders/{order['id']}/cancel").status_code == 409


def test_delete_order(client: TestClient, menu):
    order = place_takeaway(client, item(menu.burger))

    response = client.delete(f"{API}/orders/{order['id']}")
    assert response.status_code == 204

    assert client.get(f"{API}/orders/{order['id']}").status_code == 404
    assert client.get(f"{API}/kitchen-tickets").json() == []


def test_list_orders_by_status(client: TestClient, menu):
    first = place_takeaway(client, item(menu.flan))
    second = place_takeaway(client, item(menu.flan))
    client.put(f"{API}/orders/{second['id']}/status", json={"status": "CONFIRMED"})

    created = client.get(f"{API}/orders", params={"status": "CREATED"}).json()
    assert [o["id"] for o in created] == [first["id"]]


# Kitchen tickets

def test_station_queue_filters(client: TestClient, menu):
    place_takeaway(client, item(menu.burger), item(menu.soda))

    bar = client.get(f"{API}/kitchen-tickets", params={"station": "BAR"}).json()
    assert len(bar) == 1
    assert bar[0]["ticket_number"] == "B001"
    assert bar[0]["items_snapshot"][0]["name"] == "Soda"

    response = client.put(f"{API}/kitchen-tickets/{bar[0]['id']}/status", json={"status": "READY"})
    assert response.status_code == 409

    assert client.get(f"{API}/kitchen-tickets/{uuid.uuid4()}").status_code == 404


# Public tracking

def test_public_tracking_hides_contact_details(client: TestClient, menu):
    order = place_takeaway(client, item(menu.burger), address=None)

    response = client.get(f"{API}/public/orders/{order['public_code'].lower()}")

    assert response.status_code == 200
    data = response.json()
    assert data["public_code"] == order["public_code"]
    assert data["status"] == "CREATED"
    assert data["items"] == [{"name_snapshot": "Classic Burger", "qty": 1, "line_total_cents": 1000}]
    assert "phone" not in data
    assert "customer_name" not in data


def test_public_tracking_unknown_code(client: TestClient):
    response = client.get(f"{API}/public/orders/NOPE2345")
    assert response.status_code == 404
