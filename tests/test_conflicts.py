from __future__ import annotations

from unittest import mock

from sqlalchemy.exc import OperationalError


def test_stale_expected_version_is_a_conflict(client, po_payload):
    order = client.post("/purchase-orders", json=po_payload("SUP-RACE")).json()["data"]
    version = order["version"]

    first = client.post(
        f"/purchase-orders/{order['id']}/convert-to-cash",
        json={"product_id": "P-1", "expected_version": version},
    )
    assert first.status_code == 200
    assert first.json()["data"]["version"] == version + 1

    second = client.post(
        f"/purchase-orders/{order['id']}/convert-to-cash",
        json={"product_id": "P-2", "expected_version": version},
    )
    assert second.status_code == 409
    body = second.json()
    assert body["kind"] == "conflict"
    assert body["retryable"] is True

    detail = client.get(f"/purchase-orders/{order['id']}").json()["data"]
    assert [item["is_voided"] for item in detail["items"]] == [True, False]


def test_stale_payment_version_is_a_conflict(client, po_payload):
    order = client.post("/purchase-orders", json=po_payload("SUP-RACE-PAY")).json()["data"]
    payment = client.post(
        "/payments",
        json={
            "payable_id": order["id"],
            "payable_type": "purchase_order",
            "payment_method": "bank_transfer",
            "amount": "10",
            "date_received": "2026-03-06",
        },
    ).json()["data"]

    ok = client.put(f"/payments/{payment['id']}", json={"status": "verified", "expected_version": payment["version"]})
    assert ok.status_code == 200
    stale = client.put(f"/payments/{payment['id']}", json={"status": "transferred", "expected_version": payment["version"]})
    assert stale.status_code == 409


def test_store_outage_is_reported_as_retryable(client):
    with mock.patch(
        "backoffice.persistence.repository.OrderRepository.get",
        side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")),
    ):
        response = client.get("/purchase-orders/anything")
    assert response.status_code == 503
    body = response.json()
    assert body["kind"] == "unavailable"
    assert body["retryable"] is True
    assert "try again" in body["detail"]
