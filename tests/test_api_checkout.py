from __future__ import annotations

CART = [{"product_id": "P-1", "name": "Coffee 1kg", "price": "250", "quantity": 4}]


def test_quote_matches_inclusive_vat_breakdown(client):
    response = client.post(
        "/checkout/quote",
        json={"items": CART, "discount_type": "percentage", "discount_value": 10, "vat_percentage": 12},
    )
    assert response.status_code == 200
    quote = response.json()["data"]
    assert quote["subtotal"] == "1000.00"
    assert quote["discount_amount"] == "100.00"
    assert quote["total"] == "900.00"
    assert quote["net_of_vat"] == "803.57"
    assert quote["tax"] == "96.43"
    assert quote["items"][0]["product_name"] == "Coffee 1kg"


def test_cash_checkout_records_transaction(client):
    response = client.post(
        "/checkout",
        json={
            "items": CART,
            "discount_type": "percentage",
            "discount_value": 10,
            "payment_method": "cash",
            "amount_tendered": "1000",
            "customer_id": "CUS-POS",
        },
    )
    assert response.status_code == 201
    record = response.json()["data"]
    assert record["invoice_number"].startswith("INV-")
    assert record["total"] == "900.00"
    assert record["meta"]["change"] == "100.00"

    fetched = client.get(f"/transactions/{record['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["invoice_number"] == record["invoice_number"]

    listed = client.get("/transactions", params={"customer_ids": "CUS-POS"}).json()
    assert [t["id"] for t in listed["data"]] == [record["id"]]


def test_insufficient_tender_is_rejected(client):
    response = client.post(
        "/checkout",
        json={"items": CART, "discount_type": "percentage", "discount_value": 10, "payment_method": "cash", "amount_tendered": 800},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "insufficient_tender"


def test_card_checkout_without_reference_warns(client):
    response = client.post("/checkout", json={"items": CART, "payment_method": "card"})
    assert response.status_code == 201
    record = response.json()["data"]
    assert record["warnings"] == ["card approval code was not recorded"]
    assert record["meta"]["change"] == "0.00"


def test_empty_cart_is_a_validation_error(client):
    response = client.post("/checkout/quote", json={"items": []})
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "items"


def test_cash_tender_with_fraction_of_a_cent_is_refused(client):
    response = client.post(
        "/checkout",
        json={
            "items": CART,
            "discount_type": "percentage",
            "discount_value": 10,
            "payment_method": "cash",
            "amount_tendered": "899.995",
        },
    )
    assert response.status_code == 422
    assert [e["field"] for e in response.json()["errors"]] == ["amount_tendered"]
    assert client.get("/transactions").json()["meta"]["total"] == 0
