from __future__ import annotations

import json

from backoffice.cli import main


def test_quote_command_prints_json(capsys):
    code = main(
        [
            "quote",
            "--item",
            "P-1:250:4",
            "--discount-value",
            "10",
            "--vat",
            "12",
            "--method",
            "cash",
            "--tendered",
            "1000",
        ]
    )
    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert body["total"] == "900.00"
    assert body["net_of_vat"] == "803.57"
    assert body["settlement"]["change"] == "100.00"


def test_quote_command_reports_domain_errors(capsys):
    code = main(["quote", "--item", "P-1:900", "--method", "cash", "--tendered", "800"])
    assert code == 2
    assert json.loads(capsys.readouterr().err)["error"] == "insufficient_tender"


def test_reconcile_command_passes_on_consistent_store(client, po_payload, capsys):
    client.post("/purchase-orders", json=po_payload("SUP-CLI"))
    capsys.readouterr()
    code = main(["reconcile"])
    results = json.loads(capsys.readouterr().out)
    assert code == 0
    assert {r["rule"] for r in results} == {
        "order_totals_reconcile",
        "consolidated_payments_balance",
        "payment_status_in_table",
        "no_overpayment",
    }


def test_reconcile_command_accepts_converted_orders(client, po_payload, capsys):
    order = client.post("/purchase-orders", json=po_payload("SUP-CLI-CASH")).json()["data"]
    converted = client.post(f"/purchase-orders/{order['id']}/convert-to-cash", json={"product_id": "P-1"})
    assert converted.json()["data"]["total"] == "-500.00"
    capsys.readouterr()
    assert main(["reconcile"]) == 0
