from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_cache, get_db
from backend.app.main import app
from backend.services.cache import InMemoryCache

ALICE = {"X-Actor-Id": "alice", "X-Actor-Role": "admin"}
BOB = {"X-Actor-Id": "bob", "X-Actor-Role": "admin"}
VIEWER = {"X-Actor-Id": "victor", "X-Actor-Role": "viewer"}


@pytest.fixture
def client(db_session):
    cache = InMemoryCache()

    def _db():
        yield db_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_cache] = lambda: cache
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def master_data(client):
    supplier = client.post("/v1/suppliers", json={"name": "Moulins de Papeete"}, headers=ALICE)
    assert supplier.status_code == 201, supplier.text
    material = client.post(
        "/v1/raw-materials",
        json={"name": "Farine T65", "quantity": "100", "unit_cost": "10", "min_quantity": "20"},
        headers=ALICE,
    )
    assert material.status_code == 201, material.text
    return supplier.json(), material.json()


def _create_po(client, supplier, material, headers=ALICE):
    return client.post(
        "/v1/purchase-orders",
        json={
            "supplier_id": supplier["id"],
            "expected_delivery_date": "2026-11-15",
            "items": [{"material_id": material["id"], "quantity": "50", "unit_price": "16"}],
        },
        headers=headers,
    )


def test_missing_actor_is_unauthorized(client):
    assert client.get("/v1/purchase-orders").status_code == 401


def test_purchase_order_flow(client, master_data):
    supplier, material = master_data

    created = _create_po(client, supplier, material)
    assert created.status_code == 201, created.text
    po = created.json()
    assert po["status"] == "DRAFT"
    assert po["can_edit"] is True
    assert Decimal(po["total_amount"]) == Decimal("800")

    self_approval = client.post(f"/v1/purchase-orders/{po['id']}/approve", json={}, headers=ALICE)
    assert self_approval.status_code == 400
    assert self_approval.json()["kind"] == "SelfApproval"

    approved = client.post(f"/v1/purchase-orders/{po['id']}/approve", json={"notes": "ok"}, headers=BOB)
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "APPROVED"

    executed = client.post(
        f"/v1/purchase-orders/{po['id']}/execute",
        json={"actual_delivery_date": "2026-10-19"},
        headers=BOB,
    )
    assert executed.status_code == 200, executed.text
    body = executed.json()
    assert body["order"]["status"] == "EXECUTED"
    assert Decimal(body["updated_materials"][0]["unit_cost"]) == Decimal("12")
    assert Decimal(body["updated_materials"][0]["quantity"]) == Decimal("150")
    assert body["summary"]["total_items_received"] == 1

    again = client.post(
        f"/v1/purchase-orders/{po['id']}/execute",
        json={"actual_delivery_date": "2026-10-19"},
        headers=BOB,
    )
    assert again.status_code == 400
    assert again.json()["kind"] == "InvalidState"

    suppliers = client.get("/v1/suppliers", headers=ALICE).json()
    assert Decimal(suppliers[0]["total_purchases"]) == Decimal("800")
    assert Decimal(suppliers[0]["balance"]) == Decimal("800")

    history = client.get(f"/v1/suppliers/{supplier['id']}/purchase-orders", headers=ALICE).json()
    assert history["pagination"]["total"] == 1

    movements = client.get("/v1/stock-movements", params={"material_id": material["id"]}, headers=ALICE).json()
    assert [m["reason"] for m in movements] == ["purchase order"]


def test_cancel_restore_duplicate_and_delete(client, master_data):
    supplier, material = master_data
    po = _create_po(client, supplier, material).json()

    no_reason = client.post(f"/v1/purchase-orders/{po['id']}/cancel", json={"reason": ""}, headers=ALICE)
    assert no_reason.status_code == 400
    assert no_reason.json()["kind"] == "ValidationError"

    cancelled = client.post(f"/v1/purchase-orders/{po['id']}/cancel", json={"reason": "doublon"}, headers=ALICE)
    assert cancelled.json()["status"] == "CANCELLED"

    restored = client.post(f"/v1/purchase-orders/{po['id']}/restore", headers=ALICE)
    assert restored.status_code == 200, restored.text
    assert restored.json()["status"] == "DRAFT"

    dup = client.post(f"/v1/purchase-orders/{po['id']}/duplicate", json={"include_items": True}, headers=ALICE)
    assert dup.status_code == 201, dup.text
    assert dup.json()["duplicated_from"]["id"] == po["id"]
    assert dup.json()["order"]["total_amount"] == po["total_amount"]

    deleted = client.delete(f"/v1/purchase-orders/{po['id']}", headers=ALICE)
    assert deleted.status_code == 204
    missing = client.get(f"/v1/purchase-orders/{po['id']}", headers=ALICE)
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFound"


def test_update_list_and_stats(client, master_data):
    supplier, material = master_data
    po = _create_po(client, supplier, material).json()

    updated = client.put(
        f"/v1/purchase-orders/{po['id']}",
        json={"tax_amount": "40", "items": [{"material_id": material["id"], "quantity": "10", "unit_price": "3"}]},
        headers=ALICE,
    )
    assert updated.status_code == 200, updated.text
    assert Decimal(updated.json()["total_amount"]) == Decimal("70")

    listing = client.get("/v1/purchase-orders", params={"search": po["order_number"]}, headers=ALICE)
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json()["purchase_orders"]] == [po["id"]]

    stats = client.get("/v1/purchase-orders/stats", params={"period": "all"}, headers=ALICE)
    assert stats.status_code == 200, stats.text
    assert stats.json()["summary"]["total_orders"] == 1
    assert len(stats.json()["monthly_trends"]) == 12

    number = client.get("/v1/purchase-orders/generate-number", headers=ALICE)
    assert number.json()["order_number"].endswith("-0002")


def test_permissions_and_low_stock(client, master_data):
    supplier, material = master_data

    denied = _create_po(client, supplier, material, headers=VIEWER)
    assert denied.status_code == 403
    assert denied.json()["kind"] == "PermissionDenied"

    out = client.post(
        "/v1/stock-movements",
        json={"material_id": material["id"], "direction": "OUT", "quantity": "85", "reason": "production"},
        headers=ALICE,
    )
    assert out.status_code == 201, out.text
    assert Decimal(out.json()["material"]["quantity"]) == Decimal("15")

    too_much = client.post(
        "/v1/stock-movements",
        json={"material_id": material["id"], "direction": "OUT", "quantity": "16", "reason": "production"},
        headers=ALICE,
    )
    assert too_much.status_code == 400
    assert too_much.json()["kind"] == "InvalidQuantity"

    low = client.get("/v1/raw-materials/low-stock", headers=VIEWER)
    assert [m["name"] for m in low.json()] == ["Farine T65"]


def test_supplier_and_material_maintenance(client, master_data):
    supplier, material = master_data

    got = client.get(f"/v1/suppliers/{supplier['id']}", headers=VIEWER)
    assert got.status_code == 200
    assert got.json()["name"] == "Moulins de Papeete"

    off = client.put(f"/v1/suppliers/{supplier['id']}", json={"active": False}, headers=ALICE)
    assert off.status_code == 200, off.text
    assert off.json()["active"] is False

    refused = _create_po(client, supplier, material)
    assert refused.status_code == 400
    assert refused.json()["kind"] == "InactiveSupplier"

    renamed = client.put(f"/v1/raw-materials/{material['id']}", json={"name": "Farine T80"}, headers=ALICE)
    assert renamed.status_code == 200, renamed.text
    assert Decimal(renamed.json()["quantity"]) == Decimal("100")

    assert client.get(f"/v1/raw-materials/{material['id']}", headers=VIEWER).json()["name"] == "Farine T80"
    assert client.get("/v1/raw-materials/999999", headers=VIEWER).status_code == 404
    assert client.put(f"/v1/raw-materials/{material['id']}", json={"unit": "sac"}, headers=VIEWER).status_code == 403
