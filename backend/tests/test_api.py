import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_db
from backend.app.main import app

ADMIN = {"X-User-Id": "2"}


@pytest.fixture
def client(db_session, session_factory):
    """TestClient branché sur la base SQLite du test (utilisateurs déjà seedés)."""

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _item(client, sku, on_hand=0, reorder_level=10):
    r = client.post(
        "/v1/items",
        json={"sku": sku, "name": f"Item {sku}", "unit_price": "7.50", "reorder_level": reorder_level, "opening_quantity": on_hand},
        headers=ADMIN,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_writes_require_a_known_user(client):
    payload = {"sku": "A-1", "name": "Panel"}

    assert client.post("/v1/items", json=payload).status_code == 401
    assert client.post("/v1/items", json=payload, headers={"X-User-Id": "999"}).status_code == 403


def test_errors_carry_their_code(client):
    r = client.get("/v1/items/999")
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"

    item = _item(client, "A-2", on_hand=3)
    r = client.post(
        "/v1/stock-movements",
        json={"item_id": item["id"], "direction": "OUT", "quantity": 4},
        headers=ADMIN,
    )
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert (body["available"], body["required"]) == (3, 4)


def test_stock_movement_and_ledger_check(client):
    item = _item(client, "A-3", on_hand=5)

    r = client.post(
        "/v1/stock-movements",
        json={"item_id": item["id"], "direction": "IN", "quantity": 10, "reference_number": "GRN-7"},
        headers=ADMIN,
    )
    assert r.status_code == 201
    assert r.json()["qty_on_hand"] == 15

    movements = client.get(f"/v1/items/{item['id']}/movements").json()
    assert [m["direction"] for m in movements] == ["IN", "IN"]
    check = client.get(f"/v1/items/{item['id']}/ledger-check").json()
    assert check["ok"] is True
    assert (check["cached"], check["derived"]) == (15, 15)

    stock = client.get("/v1/stock", params={"item_id": item["id"]}).json()
    assert stock[0]["stock_status"] == "normal"


def test_shortage_to_receipt_flow(client):
    item = _item(client, "A-4", on_hand=0, reorder_level=10)
    r = client.post("/v1/suppliers", json={"name": "Island Parts", "lead_time_days": 5}, headers=ADMIN)
    supplier = r.json()

    r = client.post(
        "/v1/sales-orders",
        json={"customer_name": "Order A", "lines": [{"item_id": item["id"], "quantity": 15}]},
        headers=ADMIN,
    )
    assert r.status_code == 201
    order = r.json()

    (requirement,) = client.get("/v1/stock-requirements", params={"sales_order_id": order["id"]}).json()
    assert requirement["status"] == "critical"

    r = client.post(f"/v1/stock-requirements/{requirement['id']}/generate-pr", headers=ADMIN)
    assert r.status_code == 201
    pr = r.json()
    assert pr["urgency"] == "high"

    r = client.post(f"/v1/stock-requirements/{requirement['id']}/generate-pr", headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_REQUISITION"
    assert r.json()["pr_number"] == pr["pr_number"]

    r = client.post(f"/v1/purchase-requisitions/{pr['id']}/convert-to-po", json={"supplier_id": supplier["id"]}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["code"] == "NOT_APPROVED"

    assert client.post(f"/v1/purchase-requisitions/{pr['id']}/approve", headers=ADMIN).json()["status"] == "approved"
    r = client.post(f"/v1/purchase-requisitions/{pr['id']}/convert-to-po", json={"supplier_id": supplier["id"]}, headers=ADMIN)
    assert r.status_code == 201
    po_id = r.json()["po_id"]

    r = client.post(f"/v1/purchase-orders/{po_id}/receive", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["new_stock"] == 15
    assert r.json()["resolved_requirements"] == 1

    r = client.post(f"/v1/purchase-orders/{po_id}/receive", headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_RECEIVED"

    r = client.post(f"/v1/sales-orders/{order['id']}/issue", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["lines"][0]["new_quantity"] == 0
