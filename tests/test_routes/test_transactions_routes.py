from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from shopledger.core.config import Settings
from shopledger.main import create_app
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD


def purchase_payload(item_name="Kurti-A", quantity=10, unit_price=100, **extra):
    payload = {
        "type": "purchase",
        "date": "2024-01-10T10:00:00Z",
        "items": [{"itemName": item_name, "quantity": quantity, "unitPrice": unit_price}],
        "supplier": {"name": "Textile House", "contact": "9876543210"},
    }
    payload.update(extra)
    return payload


def sale_payload(item_name="Kurti-A", quantity=4, unit_price=150, **extra):
    payload = {
        "type": "sale",
        "date": "2024-01-15T10:00:00Z",
        "items": [{"itemName": item_name, "quantity": quantity, "unitPrice": unit_price}],
        "customer": {"name": "Meera"},
    }
    payload.update(extra)
    return payload


def stock_of(client, item_name):
    items = client.get("/inventory", params={"search": item_name}).json()["data"]["items"]
    match = [i for i in items if i["itemName"] == item_name]
    return match[0] if match else None


def test_create_purchase(test_client):
    response = test_client.post("/transactions", json=purchase_payload(totalAmount=1000, notes="opening"))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert "warnings" not in body
    data = body["data"]
    assert data["transactionId"].startswith("PUR-20240110-")
    assert data["totalAmount"] == 1000
    assert data["items"][0]["totalPrice"] == 1000
    assert data["supplier"]["name"] == "Textile House"
    assert data["customer"] is None

    item = stock_of(test_client, "Kurti-A")
    assert item["currentStock"] == 10
    assert item["totalValue"] == 1000


@pytest.mark.parametrize("payload,message", [
    (purchase_payload(supplier=None), "Supplier name is required"),
    (purchase_payload(totalAmount=999), "does not match"),
    (purchase_payload(type="refund"), "type"),
    (purchase_payload(items=[]), "items"),
    (purchase_payload(items=[{"itemName": "A", "quantity": 0, "unitPrice": 1}]), "quantity"),
])
def test_create_rejects_invalid_payloads(test_client, payload, message):
    response = test_client.post("/transactions", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert message in body["error"]["message"]
    assert stock_of(test_client, "Kurti-A") is None


def test_create_rejects_far_future_date(test_client):
    future = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    response = test_client.post("/transactions", json=purchase_payload(date=future))
    assert response.status_code == 400
    assert "future" in response.json()["error"]["message"]


def test_short_sale_is_recorded_with_warning(test_client):
    test_client.post("/transactions", json=purchase_payload(quantity=3))

    response = test_client.post("/transactions", json=sale_payload(quantity=5))

    assert response.status_code == 201
    body = response.json()
    assert body["data"]["transactionId"].startswith("SAL-")
    assert len(body["warnings"]) == 1
    assert "Insufficient stock" in body["warnings"][0]
    assert stock_of(test_client, "Kurti-A")["currentStock"] == 3


def test_strict_policy_rejects_short_sale():
    settings = Settings(
        DATABASE_URL="",
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        STOCK_ADJUSTMENT_POLICY="strict",
    )
    with TestClient(create_app(settings)) as client:
        client.post("/transactions", json=purchase_payload(quantity=3))
        response = client.post("/transactions", json=sale_payload(quantity=5))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "STOCK_ADJUSTMENT_FAILED"
        assert client.get("/transactions").json()["data"]["pagination"]["total"] == 1


def test_purchase_sale_delete_round_trip(test_client):
    test_client.post("/transactions", json=purchase_payload())
    sold = test_client.post("/transactions", json=sale_payload()).json()["data"]

    item = stock_of(test_client, "Kurti-A")
    assert (item["currentStock"], item["unitPrice"], item["totalValue"]) == (6, 100, 600)

    response = test_client.delete(f"/transactions/{sold['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["transactionId"] == sold["transactionId"]

    item = stock_of(test_client, "Kurti-A")
    assert (item["currentStock"], item["totalValue"]) == (10, 1000)
    assert test_client.get(f"/transactions/{sold['id']}").status_code == 404


def test_get_transaction(test_client):
    created = test_client.post("/transactions", json=purchase_payload()).json()["data"]

    response = test_client.get(f"/transactions/{created['id']}")
    assert response.status_code == 200
    assert response.json()["data"] == created

    missing = test_client.get("/transactions/999")
    assert missing.status_code == 404
    assert missing.json() == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "Transaction 999 not found"},
    }

    assert test_client.get("/transactions/abc").status_code == 400


def test_update_transaction(test_client):
    created = test_client.post("/transactions", json=purchase_payload()).json()["data"]

    response = test_client.put(
        f"/transactions/{created['id']}",
        json={"items": [{"itemName": "Kurti-A", "quantity": 6, "unitPrice": 100}], "notes": "recount"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalAmount"] == 600
    assert data["notes"] == "recount"
    assert data["transactionId"] == created["transactionId"]
    assert stock_of(test_client, "Kurti-A")["currentStock"] == 6


def test_update_validation(test_client):
    created = test_client.post("/transactions", json=purchase_payload()).json()["data"]

    empty = test_client.put(f"/transactions/{created['id']}", json={})
    assert empty.status_code == 400
    assert empty.json()["error"]["message"] == "No fields to update"

    bad_total = test_client.put(f"/transactions/{created['id']}", json={"totalAmount": 5})
    assert bad_total.status_code == 400

    missing = test_client.put("/transactions/999", json={"notes": "x"})
    assert missing.status_code == 404


def test_list_transactions(test_client):
    test_client.post("/transactions", json=purchase_payload())
    test_client.post("/transactions", json=purchase_payload("Silk Scarf", 20, 80, date="2024-01-12T10:00:00Z"))
    test_client.post("/transactions", json=sale_payload())

    response = test_client.get("/transactions")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 10, "total": 3, "totalPages": 1}
    assert [t["date"][:10] for t in data["transactions"]] == ["2024-01-15", "2024-01-12", "2024-01-10"]

    sales = test_client.get("/transactions", params={"type": "sale"}).json()["data"]
    assert sales["pagination"]["total"] == 1

    window = test_client.get("/transactions", params={"startDate": "2024-01-11", "endDate": "2024-01-12"}).json()
    assert window["data"]["pagination"]["total"] == 1

    search = test_client.get("/transactions", params={"search": "scarf"}).json()["data"]
    assert [t["items"][0]["itemName"] for t in search["transactions"]] == ["Silk Scarf"]

    paged = test_client.get(
        "/transactions", params={"limit": 2, "page": 2, "sortBy": "totalAmount", "sortOrder": "asc"}
    ).json()["data"]
    assert paged["pagination"]["totalPages"] == 2
    assert [t["totalAmount"] for t in paged["transactions"]] == [1600]


def test_list_unknown_sort_falls_back_to_newest_first(test_client):
    test_client.post("/transactions", json=purchase_payload())
    test_client.post("/transactions", json=sale_payload())

    data = test_client.get("/transactions", params={"sortBy": "bogus", "sortOrder": "asc"}).json()["data"]
    assert [t["type"] for t in data["transactions"]] == ["sale", "purchase"]


@pytest.mark.parametrize("params,code", [
    ({"page": 0}, "INVALID_PARAMETERS"),
    ({"limit": 101}, "INVALID_PARAMETERS"),
    ({"type": "refund"}, "INVALID_PARAMETERS"),
    ({"startDate": "yesterday"}, "INVALID_DATE"),
])
def test_list_rejects_bad_parameters(test_client, params, code):
    response = test_client.get("/transactions", params=params)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == code
