# Overview: Pytest coverage for quotes, invoices, snapshots, document numbers and payments.

"""
Quote / invoice service tests

Documents are snapshots: editing the ticket after issue, or editing the
currency registry, must never change an issued document.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from repairdesk.models import Quote, RepairItem
from repairdesk.services import currency_service, document_service, repair_service
from repairdesk.services.currency_service import CurrencyConfigurationError
from repairdesk.services.document_service import DocumentError, DocumentNumberError
from repairdesk.services.tenant_service import TenantAccessError
from repairdesk.validation import ConflictError, ValidationError


def _approved_quote(org_id, repair_id, **kwargs):
    quote = document_service.create_quote(org_id=org_id, repair_id=repair_id, **kwargs)
    return document_service.update_quote(org_id=org_id, quote_id=quote.id, patch={"status": "approved"})


class TestQuotes:
    def test_quote_uses_default_currency_and_tax_rate(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)

        assert quote.document_number.startswith("QT-")
        assert quote.currency_code == "USD"
        assert quote.currency_symbol == "$"
        assert Decimal(quote.subtotal) == Decimal("25.50")
        assert Decimal(quote.tax_rate_percent) == Decimal("7.25")
        # 25.50 * 7.25% = 1.84875, kept at internal precision
        assert Decimal(quote.tax) == Decimal("1.8488")
        assert quote.to_dict()["total"] == "27.35"
        assert quote.to_dict()["display"]["total"] == "$27.35"
        assert quote.tax_defaulted is False

    def test_explicit_tax_and_currency(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(
            org_id=org_a.id, repair_id=repair_a.id, tax="2.55", currency_code="jpy",
        )
        data = quote.to_dict()
        assert quote.tax_source == "explicit"
        assert quote.currency_decimal_digits == 0
        assert data["total"] == "28"
        assert data["display"]["total"] == "¥28"

    def test_tax_defaults_to_zero_without_tax_configuration(self, db_session, org_a, repair_a):
        currency_service.ensure_core_currencies()
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)

        assert quote.tax_defaulted is True
        assert quote.tax_source == "none"
        assert Decimal(quote.total) == Decimal("25.50")

    def test_no_currency_anywhere_is_a_configuration_error(self, db_session, org_a, repair_a):
        with pytest.raises(CurrencyConfigurationError):
            document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        assert db_session.query(Quote).count() == 0

    def test_one_active_quote_per_ticket(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        with pytest.raises(ConflictError):
            document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)

        document_service.update_quote(org_id=org_a.id, quote_id=quote.id, patch={"status": "rejected"})
        second = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        assert second.id != quote.id

    def test_snapshot_survives_ticket_edits(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)

        item = repair_a.live_items[0]
        repair_service.update_item(
            org_id=org_a.id, repair_id=repair_a.id, item_id=item.id, patch={"unit_price": Decimal("99.00")},
        )
        repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch={
            "description": "Thermal paste", "unit_price": Decimal("3.00"), "item_type": "part",
        })

        reloaded = document_service.get_quote(org_id=org_a.id, quote_id=quote.id)
        items = document_service.load_document_items(reloaded)
        assert Decimal(reloaded.subtotal) == Decimal("25.50")
        assert [i.description for i in items] == ["Screen assembly", "Labor"]
        assert items[0].unit_price == Decimal("15.50")

        updated = document_service.update_quote(org_id=org_a.id, quote_id=quote.id, patch={"tax": "1.00"})
        assert Decimal(updated.subtotal) == Decimal("25.50")
        assert Decimal(updated.total) == Decimal("26.50")

    def test_snapshot_survives_currency_edits(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        currency_service.update_currency(org_id=org_a.id, code="USD", patch={"symbol": "US$"})

        reloaded = document_service.get_quote(org_id=org_a.id, quote_id=quote.id)
        assert reloaded.to_dict()["display"]["subtotal"] == "$25.50"

    def test_regenerate_reads_live_items(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id, tax="0")
        repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch={
            "description": "Keyboard", "unit_price": Decimal("4.50"), "item_type": "part",
        })

        regenerated = document_service.regenerate_quote(org_id=org_a.id, quote_id=quote.id)
        assert Decimal(regenerated.subtotal) == Decimal("30.00")
        assert regenerated.tax_source == "explicit"
        assert len(regenerated.items_data) == 3

    def test_only_pending_quotes_change(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = _approved_quote(org_a.id, repair_a.id)
        assert quote.repair.customer_approval is True

        with pytest.raises(ConflictError):
            document_service.update_quote(org_id=org_a.id, quote_id=quote.id, patch={"status": "rejected"})
        with pytest.raises(ConflictError):
            document_service.update_quote(org_id=org_a.id, quote_id=quote.id, patch={"tax": "5"})
        with pytest.raises(ConflictError):
            document_service.regenerate_quote(org_id=org_a.id, quote_id=quote.id)

    def test_unknown_quote_status(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        with pytest.raises(ValidationError):
            document_service.update_quote(org_id=org_a.id, quote_id=quote.id, patch={"status": "maybe"})


class TestSnapshotFallbacks:
    def test_malformed_snapshot_falls_back_to_live_items(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        quote.items_data = [{"description": "broken"}]
        db_session.commit()

        items = document_service.load_document_items(quote)
        assert [i.description for i in items] == ["Screen assembly", "Labor"]

    def test_unparseable_stored_text_falls_back_on_print(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        db_session.execute(
            text("UPDATE quotes SET items_data = :raw WHERE id = :id"),
            {"raw": "[{not json", "id": quote.id},
        )
        db_session.commit()
        db_session.expire_all()

        reloaded = document_service.get_quote(org_id=org_a.id, quote_id=quote.id)
        printable = document_service.build_printable(org_id=org_a.id, doc=reloaded)

        assert reloaded.to_dict()["items_data"] == []
        assert [i["description"] for i in printable["items"]] == ["Screen assembly", "Labor"]

    def test_legacy_item_ids_are_migrated(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        screen = db_session.query(RepairItem).filter_by(description="Screen assembly").one()

        quote.items_data = None
        quote.legacy_item_ids = [screen.id]
        db_session.commit()

        assert [i.description for i in document_service.load_document_items(quote)] == ["Screen assembly"]

        converted = document_service.migrate_legacy_snapshots()
        db_session.expire_all()
        migrated = db_session.get(Quote, quote.id)

        assert converted == 1
        assert migrated.legacy_item_ids is None
        assert [entry["description"] for entry in migrated.items_data] == ["Screen assembly"]
        assert document_service.migrate_legacy_snapshots() == 0


class TestDocumentNumbers:
    def test_collision_is_retried(self, db_session, provisioned, repair_a, repair_b, monkeypatch):
        org_a, org_b = provisioned
        first = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        taken = first.document_number

        numbers = iter([taken, "QT-RETRY-0001"])
        monkeypatch.setattr(document_service, "generate_document_number", lambda prefix: next(numbers))

        second = document_service.create_quote(org_id=org_b.id, repair_id=repair_b.id)
        assert second.document_number == "QT-RETRY-0001"

    def test_exhausted_retries_raise_document_number_error(self, db_session, provisioned, repair_a, repair_b, monkeypatch):
        org_a, org_b = provisioned
        first = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        taken = first.document_number
        monkeypatch.setattr(document_service, "generate_document_number", lambda prefix: taken)

        with pytest.raises(DocumentNumberError) as exc:
            document_service.create_quote(org_id=org_b.id, repair_id=repair_b.id)
        assert exc.value.details["attempts"] == 3
        assert db_session.query(Quote).count() == 1


class TestInvoices:
    def test_invoice_from_approved_quote_copies_snapshot(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = _approved_quote(org_a.id, repair_a.id, currency_code="EUR")
        repair_service.add_item(org_id=org_a.id, repair_id=repair_a.id, patch={
            "description": "Extra", "unit_price": Decimal("10.00"), "item_type": "service",
        })

        invoice = document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id, from_quote_id=quote.id)

        assert invoice.document_number.startswith("INV-")
        assert invoice.currency_code == "EUR"
        assert invoice.items_data == quote.items_data
        assert Decimal(invoice.total) == Decimal(quote.total)
        assert Decimal(invoice.repair.total_cost) == Decimal(invoice.total)

    def test_pending_quote_cannot_be_invoiced(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        quote = document_service.create_quote(org_id=org_a.id, repair_id=repair_a.id)
        with pytest.raises(ConflictError):
            document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id, from_quote_id=quote.id)

    def test_quote_of_other_ticket_rejected(self, db_session, provisioned, repair_a, customer_a):
        org_a, _ = provisioned
        other = repair_service.create_repair(org_id=org_a.id, patch={"customer_id": customer_a.id, "issue": "x"})
        quote = _approved_quote(org_a.id, other.id)
        with pytest.raises(DocumentError):
            document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id, from_quote_id=quote.id)

    def test_one_invoice_per_ticket(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id)
        with pytest.raises(ConflictError):
            document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id)


class TestPayments:
    def _invoice(self, org_id, repair_id):
        return document_service.create_invoice(org_id=org_id, repair_id=repair_id, tax="0")

    def test_partial_then_paid(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        repair_service.update_status(org_id=org_a.id, repair_id=repair_a.id, status="ready_for_pickup")
        invoice = self._invoice(org_a.id, repair_a.id)

        invoice = document_service.record_payment(
            org_id=org_a.id, invoice_id=invoice.id, amount="10.50", payment_method="card",
            payment_reference="pi_123",
        )
        assert invoice.status == "partial"
        assert invoice.balance_due == Decimal("15.00")

        invoice = document_service.record_payment(
            org_id=org_a.id, invoice_id=invoice.id, amount=15, payment_method="cash",
        )
        assert invoice.status == "paid"
        assert invoice.date_paid is not None
        assert invoice.payment_reference == "pi_123"
        assert invoice.repair.status == "completed"

    def test_overpayment_rejected(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        invoice = self._invoice(org_a.id, repair_a.id)
        with pytest.raises(ValidationError):
            document_service.record_payment(
                org_id=org_a.id, invoice_id=invoice.id, amount="25.51", payment_method="cash",
            )

    @pytest.mark.parametrize("amount", [0, "-1", "abc", None])
    def test_invalid_amounts(self, db_session, provisioned, repair_a, amount):
        org_a, _ = provisioned
        invoice = self._invoice(org_a.id, repair_a.id)
        with pytest.raises(ValidationError):
            document_service.record_payment(
                org_id=org_a.id, invoice_id=invoice.id, amount=amount, payment_method="cash",
            )

    def test_paid_invoice_cannot_be_deleted(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        invoice = self._invoice(org_a.id, repair_a.id)
        document_service.record_payment(org_id=org_a.id, invoice_id=invoice.id, amount="25.50", payment_method="cash")

        with pytest.raises(ConflictError):
            document_service.delete_invoice(org_id=org_a.id, invoice_id=invoice.id)
        with pytest.raises(ConflictError):
            document_service.record_payment(org_id=org_a.id, invoice_id=invoice.id, amount=1, payment_method="cash")


class TestPrintable:
    def test_printable_carries_document_currency(self, db_session, provisioned, repair_a):
        org_a, _ = provisioned
        invoice = document_service.create_invoice(org_id=org_a.id, repair_id=repair_a.id, currency_code="JPY")
        printable = document_service.build_printable(org_id=org_a.id, doc=invoice)

        assert printable["title"] == "Invoice"
        assert printable["currency"] == {"code": "JPY", "symbol": "¥", "decimal_digits": 0}
        assert printable["items"][1]["line_total"] == "¥10"
        assert printable["tax_label"] == "Tax (7.25%)"
        assert printable["customer"]["last_name"] == "Lovelace"
        assert printable["shop"]["name"] == "Org A - Fixit Shop"
        assert printable["shop"]["phone"] == "555-0100"
        assert printable["empty_message"] is None

    def test_printable_empty_items(self, db_session, provisioned, repair_b):
        _, org_b = provisioned
        quote = document_service.create_quote(org_id=org_b.id, repair_id=repair_b.id)
        printable = document_service.build_printable(org_id=org_b.id, doc=quote)

        assert printable["title"] == "Repair Quote"
        assert printable["items"] == []
        assert printable["empty_message"] == "No items"
        assert printable["total"] == "$0.00"

    def test_printable_of_other_org_denied(self, db_session, provisioned, repair_b):
        org_a, org_b = provisioned
        quote = document_service.create_quote(org_id=org_b.id, repair_id=repair_b.id)
        with pytest.raises(TenantAccessError):
            document_service.build_printable(org_id=org_a.id, doc=quote)


class TestDocumentTenancy:
    def test_foreign_documents_not_found(self, db_session, provisioned, repair_b):
        org_a, org_b = provisioned
        quote = document_service.create_quote(org_id=org_b.id, repair_id=repair_b.id)
        invoice = document_service.create_invoice(org_id=org_b.id, repair_id=repair_b.id)

        with pytest.raises(TenantAccessError):
            document_service.get_quote(org_id=org_a.id, quote_id=quote.id)
        with pytest.raises(TenantAccessError):
            document_service.get_invoice(org_id=org_a.id, invoice_id=invoice.id)
        with pytest.raises(TenantAccessError):
            document_service.create_quote(org_id=org_a.id, repair_id=repair_b.id)
        assert document_service.list_invoices(org_id=org_a.id) == []
