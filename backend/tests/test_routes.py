# Overview: Pytest coverage for the HTTP surface: intake to paid invoice, settings and reports.

from decimal import Decimal

from repairdesk.services.currency_service import ensure_core_currencies


def _create_ticket(client, headers, **extra):
    customer = client.post(
        "/api/customers", json={"first_name": "Linus", "last_name": "Torvalds"}, headers=headers,
    )
    assert customer.status_code == 201
    device = client.post(
        f"/api/customers/{customer.json['id']}/devices",
        json={"device_type": "laptop", "brand": "Lenovo", "model": "T480"},
        headers=headers,
    )
    assert device.status_code == 201
    body = {"customer_id": customer.json["id"], "device_id": device.json["id"], "issue": "Cracked screen"}
    body.update(extra)
    ticket = client.post("/api/repairs", json=body, headers=headers)
    assert ticket.status_code == 201
    return ticket.json


def _add_items(client, headers, repair_id):
    for item in (
        {"description": "Screen assembly", "quantity": 1, "unit_price": "15.50", "item_type": "part"},
        {"description": "Labor", "quantity": 2, "unit_price": 5, "item_type": "service"},
    ):
        resp = client.post(f"/api/repairs/{repair_id}/items", json=item, headers=headers)
        assert resp.status_code == 201


class TestRepairFlow:
    def test_intake_to_paid_invoice(self, client, provisioned, headers_a):
        ticket = _create_ticket(client, headers_a, priority_level=1)
        assert ticket["is_urgent"] is True
        _add_items(client, headers_a, ticket["id"])

        items = client.get(f"/api/repairs/{ticket['id']}/items", headers=headers_a).json
        assert items["count"] == 2
        assert Decimal(items["subtotal"]) == Decimal("25.50")

        quote = client.post("/api/quotes", json={"repair_id": ticket["id"]}, headers=headers_a)
        assert quote.status_code == 201
        assert quote.json["warnings"] == []
        assert quote.json["currency_code"] == "USD"
        assert quote.json["total"] == "27.35"
        assert quote.json["display"]["total"] == "$27.35"

        approved = client.put(f"/api/quotes/{quote.json['id']}", json={"status": "approved"}, headers=headers_a)
        assert approved.status_code == 200
        assert approved.json["status"] == "approved"

        invoice = client.post(
            "/api/invoices", json={"repair_id": ticket["id"], "quote_id": quote.json["id"]}, headers=headers_a,
        )
        assert invoice.status_code == 201
        assert invoice.json["status"] == "unpaid"
        assert invoice.json["total"] == "27.35"

        client.put(f"/api/repairs/{ticket['id']}/status", json={"status": "ready_for_pickup"}, headers=headers_a)
        paid = client.post(
            f"/api/invoices/{invoice.json['id']}/pay",
            json={"amount": "27.35", "payment_method": "card", "payment_reference": "ch_123"},
            headers=headers_a,
        )
        assert paid.status_code == 200
        assert paid.json["status"] == "paid"
        assert paid.json["balance_due"] == "0.00"
        assert paid.json["payment_reference"] == "ch_123"

        repair = client.get(f"/api/repairs/{ticket['id']}", headers=headers_a).json
        assert repair["status"] == "completed"

    def test_printable_invoice(self, client, provisioned, headers_a, repair_a):
        invoice = client.post("/api/invoices", json={"repair_id": repair_a.id}, headers=headers_a)
        printable = client.get(f"/api/invoices/{invoice.json['id']}/print", headers=headers_a)

        assert printable.status_code == 200
        assert printable.json["title"] == "Invoice"
        assert printable.json["tax_label"] == "Tax (7.25%)"
        assert [i["line_total"] for i in printable.json["items"]] == ["$15.50", "$10.00"]
        assert printable.json["customer"]["last_name"] == "Lovelace"

    def test_overpayment_rejected(self, client, provisioned, headers_a, repair_a):
        invoice = client.post("/api/invoices", json={"repair_id": repair_a.id, "tax": 0}, headers=headers_a)
        resp = client.post(
            f"/api/invoices/{invoice.json['id']}/pay",
            json={"amount": "30", "payment_method": "cash"},
            headers=headers_a,
        )
        assert resp.status_code == 400

    def test_second_quote_conflicts(self, client, provisioned, headers_a, repair_a):
        assert client.post("/api/quotes", json={"repair_id": repair_a.id}, headers=headers_a).status_code == 201
        assert client.post("/api/quotes", json={"repair_id": repair_a.id}, headers=headers_a).status_code == 409

    def test_quote_requires_repair_id(self, client, provisioned, headers_a):
        resp = client.post("/api/quotes", json={}, headers=headers_a)
        assert resp.status_code == 400

    def test_unknown_quote_field_rejected(self, client, provisioned, headers_a, repair_a):
        quote = client.post("/api/quotes", json={"repair_id": repair_a.id}, headers=headers_a)
        resp = client.put(f"/api/quotes/{quote.json['id']}", json={"total": "1"}, headers=headers_a)
        assert resp.status_code == 400


class TestConfigurationFaults:
    def test_quote_without_currencies_is_a_configuration_error(self, client, headers_a, repair_a):
        resp = client.post("/api/quotes", json={"repair_id": repair_a.id}, headers=headers_a)

        assert resp.status_code == 409
        assert resp.json["error_type"] == "configuration"

    def test_missing_tax_rate_is_flagged(self, client, db_session, headers_a, repair_a):
        ensure_core_currencies()
        resp = client.post("/api/quotes", json={"repair_id": repair_a.id}, headers=headers_a)

        assert resp.status_code == 201
        assert resp.json["warnings"] == ["tax_defaulted_to_zero"]
        assert resp.json["tax"] == "0.00"
        assert resp.json["tax_source"] == "none"


class TestSettings:
    def test_default_currency_reports_its_source(self, client, provisioned, headers_a):
        resp = client.get("/api/settings/currencies/default", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["code"] == "USD"
        assert resp.json["source"] == "organization_default"

    def test_new_default_currency_takes_over(self, client, provisioned, headers_a):
        created = client.post(
            "/api/settings/currencies",
            json={"code": "krw", "name": "Won", "symbol": "₩", "decimal_digits": 0, "is_default": True},
            headers=headers_a,
        )
        assert created.status_code == 201
        assert created.json["code"] == "KRW"

        resp = client.get("/api/settings/currencies/default", headers=headers_a)
        assert resp.json["code"] == "KRW"

    def test_existing_currency_promoted_to_default(self, client, provisioned, headers_a):
        promoted = client.put("/api/settings/currencies/jpy", json={"is_default": True}, headers=headers_a)
        assert promoted.status_code == 200
        assert promoted.json["is_default"] is True

        resp = client.get("/api/settings/currencies/default", headers=headers_a)
        assert resp.json["code"] == "JPY"
        assert resp.json["source"] == "organization_default"

    def test_currency_digits_follow_code(self, client, provisioned, headers_a):
        resp = client.post(
            "/api/settings/currencies",
            json={"code": "KRW", "name": "Won", "symbol": "₩", "decimal_digits": 2},
            headers=headers_a,
        )
        assert resp.status_code == 400

        update = client.put("/api/settings/currencies/JPY", json={"decimal_digits": 2}, headers=headers_a)
        assert update.status_code == 400

    def test_duplicate_currency_conflicts(self, client, provisioned, headers_a):
        resp = client.post(
            "/api/settings/currencies", json={"code": "USD", "name": "Dollar", "symbol": "$"}, headers=headers_a,
        )
        assert resp.status_code == 409

    def test_invalid_currency_rejected(self, client, provisioned, headers_a):
        bad_digits = client.post(
            "/api/settings/currencies",
            json={"code": "KWD", "name": "Dinar", "symbol": "KD", "decimal_digits": 3},
            headers=headers_a,
        )
        assert bad_digits.status_code == 400

        missing = client.post("/api/settings/currencies", json={"code": "KWD"}, headers=headers_a)
        assert missing.status_code == 400

    def test_default_currency_unconfigured(self, client, db_session, headers_a):
        resp = client.get("/api/settings/currencies/default", headers=headers_a)
        assert resp.status_code == 409
        assert resp.json["error_type"] == "configuration"

    def test_tax_rate_update(self, client, provisioned, headers_a):
        rate = client.get("/api/settings/tax-rates/default", headers=headers_a).json
        resp = client.put(f"/api/settings/tax-rates/{rate['id']}", json={"rate": "7.5"}, headers=headers_a)

        assert resp.status_code == 200
        assert Decimal(resp.json["rate"]) == Decimal("7.5")

        bad = client.put(f"/api/settings/tax-rates/{rate['id']}", json={"rate": 150}, headers=headers_a)
        assert bad.status_code == 400

    def test_default_tax_rate_cannot_be_cleared(self, client, provisioned, headers_a):
        rate = client.get("/api/settings/tax-rates/default", headers=headers_a).json
        resp = client.put(f"/api/settings/tax-rates/{rate['id']}", json={"is_default": False}, headers=headers_a)

        assert resp.status_code == 409
        again = client.get("/api/settings/tax-rates/default", headers=headers_a)
        assert again.json["id"] == rate["id"]


class TestInventory:
    def test_adjust_stock(self, client, db_session, headers_a):
        item = client.post(
            "/api/inventory",
            json={"name": "Thermal paste", "category": "supplies", "price": "4.99", "quantity": 2},
            headers=headers_a,
        )
        assert item.status_code == 201

        resp = client.post(f"/api/inventory/{item.json['id']}/adjust", json={"delta": 3}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["quantity"] == 5

        resp = client.post(f"/api/inventory/{item.json['id']}/adjust", json={"delta": -9}, headers=headers_a)
        assert resp.status_code == 400

    def test_adjust_foreign_item(self, client, db_session, headers_a, headers_b):
        item = client.post(
            "/api/inventory", json={"name": "Fan", "category": "cooling", "price": 12}, headers=headers_b,
        )
        resp = client.post(f"/api/inventory/{item.json['id']}/adjust", json={"delta": 1}, headers=headers_a)
        assert resp.status_code == 404


class TestReports:
    def test_summary(self, client, provisioned, headers_a, repair_a):
        client.post("/api/invoices", json={"repair_id": repair_a.id}, headers=headers_a)
        resp = client.get("/api/reports/summary", headers=headers_a)

        assert resp.status_code == 200
        assert resp.json["total"] == 1
        diagnosing = [s for s in resp.json["statuses"] if s["status"] == "diagnosing"][0]
        assert diagnosing["count"] == 1
        assert diagnosing["percentage"] == 100.0
        usd = resp.json["invoices"]["totals"][0]
        assert usd["currency_code"] == "USD"
        assert usd["outstanding"] == "27.35"
        assert usd["display"]["outstanding"] == "$27.35"

    def test_summary_survives_empty_registry(self, client, db_session, headers_a):
        resp = client.get("/api/reports/summary", headers=headers_a)

        assert resp.status_code == 200
        assert resp.json["total"] == 0
        assert resp.json["invoices"]["currency"]["source"] == "last_resort"

    def test_urgent_and_workloads(self, client, provisioned, headers_a, technician_a):
        _create_ticket(client, headers_a, priority_level=2, technician_id=technician_a.id)
        _create_ticket(client, headers_a, priority_level=3, technician_id=technician_a.id)

        urgent = client.get("/api/reports/urgent", headers=headers_a).json
        assert urgent["count"] == 1
        assert urgent["items"][0]["is_urgent"] is True

        workloads = client.get("/api/reports/technicians", headers=headers_a).json
        assert workloads["items"] == [
            {"technician_id": technician_a.id, "name": "Grace Hopper", "active": 2, "urgent": 1}
        ]


class TestHealth:
    def test_healthy_with_reference_data(self, client, provisioned):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["organizations"] == 2

    def test_degraded_without_currencies(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
