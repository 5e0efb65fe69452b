# Overview: Service-layer operations for quotes and invoices; snapshotting, numbering, payments and printable values.

"""
Quotes and invoices

Every document stores the exact line items and currency convention it was
compiled under. Later reads (edits, printing, invoice-from-quote) load from
that snapshot; only regenerate_quote re-reads the ticket's live items.

Document numbers are timestamp + random suffix. A unique collision rolls
back and retries the whole operation with a new number
(DOCUMENT_NUMBER_MAX_ATTEMPTS); exhausting the retries raises
DocumentNumberError.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import Invoice, Quote, RepairItem, RepairTicket
from ..models.documents import (
    INVOICE_STATUSES,
    QUOTE_STATUSES,
    TAX_SOURCE_EXPLICIT,
    TAX_SOURCE_RATE,
)
from ..money import TaxRateInfo, format_currency, quantize_internal, round_for_currency, to_decimal
from ..time_utils import days_from_now, to_utc_z, utcnow
from ..validation import ConflictError, ValidationError
from .concurrency import NumberCollisionError, run_with_retry
from .currency_service import ResolvedCurrency, resolve_currency
from .document_compiler import (
    DOCUMENT_TITLES,
    KIND_INVOICE,
    KIND_QUOTE,
    CompiledDocument,
    LineItemSnapshot,
    SnapshotError,
    compile_document,
    parse_snapshot,
)
from .repair_service import apply_status, get_repair
from .tax_service import TaxConfigurationError, get_tax_rate, resolve_default_tax_rate
from .tenant_service import TenantAccessError, require_owned, scoped_query


QUOTE_PREFIX = "QT"
INVOICE_PREFIX = "INV"


class DocumentError(Exception):
    """Raised for quote / invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DocumentNumberError(DocumentError):
    """Every generated document number collided."""
    pass


def generate_document_number(prefix: str, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"{prefix}-{now:%Y%m%d%H%M%S}-{secrets.randbelow(10000):04d}"


def _run_numbered(op, *, prefix: str):
    attempts = current_app.config.get("DOCUMENT_NUMBER_MAX_ATTEMPTS", 5)
    try:
        return run_with_retry(op, attempts=attempts)
    except NumberCollisionError as exc:
        current_app.logger.error("Document number allocation failed for prefix %s: %s", prefix, exc)
        raise DocumentNumberError(
            "Could not allocate a document number, please retry",
            details={"prefix": prefix, "attempts": attempts},
        ) from exc


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_active_quote(*, org_id: int, repair_id: int) -> Optional[Quote]:
    return (
        scoped_query(Quote, org_id)
        .filter(Quote.repair_id == repair_id, Quote.status != "rejected")
        .order_by(Quote.id.desc())
        .first()
    )


def find_active_invoice(*, org_id: int, repair_id: int) -> Optional[Invoice]:
    return (
        scoped_query(Invoice, org_id)
        .filter(Invoice.repair_id == repair_id)
        .order_by(Invoice.id.desc())
        .first()
    )


def get_quote(*, org_id: int, quote_id: int) -> Quote:
    return require_owned(Quote, quote_id, org_id, label="Quote")


def get_invoice(*, org_id: int, invoice_id: int) -> Invoice:
    return require_owned(Invoice, invoice_id, org_id, label="Invoice")


def list_quotes(*, org_id: int, repair_id: Optional[int] = None) -> list[Quote]:
    query = scoped_query(Quote, org_id)
    if repair_id is not None:
        query = query.filter(Quote.repair_id == repair_id)
    return query.order_by(Quote.date_created.desc(), Quote.id.desc()).all()


def list_invoices(*, org_id: int, repair_id: Optional[int] = None, status: Optional[str] = None) -> list[Invoice]:
    query = scoped_query(Invoice, org_id)
    if repair_id is not None:
        query = query.filter(Invoice.repair_id == repair_id)
    if status:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(INVOICE_STATUSES)}")
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.date_issued.desc(), Invoice.id.desc()).all()


# ---------------------------------------------------------------------------
# Snapshot handling
# ---------------------------------------------------------------------------

def _live_snapshots(repair_id: int) -> tuple[LineItemSnapshot, ...]:
    items = (
        db.session.query(RepairItem)
        .filter(RepairItem.repair_id == repair_id, RepairItem.is_deleted.is_(False))
        .order_by(RepairItem.id)
        .all()
    )
    return tuple(LineItemSnapshot.from_model(item) for item in items)


def _legacy_snapshots(doc) -> tuple[LineItemSnapshot, ...]:
    if not isinstance(doc.legacy_item_ids, list):
        raise TypeError("legacy_item_ids must be a list")
    ids = [int(i) for i in doc.legacy_item_ids]
    items = (
        db.session.query(RepairItem)
        .filter(RepairItem.repair_id == doc.repair_id, RepairItem.id.in_(ids))
        .all()
    )
    by_id = {item.id: item for item in items}
    return tuple(LineItemSnapshot.from_model(by_id[i]) for i in ids if i in by_id)


def load_document_items(doc) -> tuple[LineItemSnapshot, ...]:
    """
    Items a document was issued with.

    Order: items_data snapshot, then the legacy id list resolved against the
    ticket's items, then the ticket's live items. A malformed snapshot is
    logged and falls back instead of failing the read.
    """
    if doc.items_data is not None:
        try:
            return parse_snapshot(doc.items_data)
        except SnapshotError as exc:
            current_app.logger.warning(
                "Malformed items snapshot on %s %s, using live items: %s",
                type(doc).__name__, doc.document_number, exc,
            )
            return _live_snapshots(doc.repair_id)

    if doc.legacy_item_ids:
        try:
            return _legacy_snapshots(doc)
        except (TypeError, ValueError) as exc:
            current_app.logger.warning(
                "Malformed legacy item ids on %s %s, using live items: %s",
                type(doc).__name__, doc.document_number, exc,
            )

    return _live_snapshots(doc.repair_id)


def _stored_tax_rate(doc) -> Optional[TaxRateInfo]:
    if doc.tax_source != TAX_SOURCE_RATE or doc.tax_rate_percent is None:
        return None
    return TaxRateInfo(
        id=doc.tax_rate_id,
        country_code="",
        region_code=None,
        name="",
        rate=Decimal(doc.tax_rate_percent),
    )


def _resolve_context(
    org_id: int,
    *,
    currency_code: Optional[str],
    tax_rate_id: Optional[int],
    explicit_tax: Any,
) -> tuple[ResolvedCurrency, Optional[TaxRateInfo]]:
    """Currency must resolve (configuration errors propagate); a missing tax rate becomes zero tax."""
    currency = resolve_currency(org_id, currency_code)

    if explicit_tax is not None:
        return currency, None
    if tax_rate_id is not None:
        return currency, get_tax_rate(org_id=org_id, tax_rate_id=tax_rate_id)
    return currency, _default_tax_rate_or_none(org_id)


def _default_tax_rate_or_none(org_id: int) -> Optional[TaxRateInfo]:
    try:
        return resolve_default_tax_rate(org_id)
    except TaxConfigurationError as exc:
        current_app.logger.warning("Tax defaulted to zero for org %s: %s", org_id, exc)
        return None


def _check_explicit_tax(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValidationError("tax must be a number")
    if amount < 0:
        raise ValidationError("tax must be >= 0")
    return amount


def _apply_compiled(doc, compiled: CompiledDocument) -> None:
    doc.subtotal = compiled.subtotal
    doc.tax = compiled.tax
    doc.total = compiled.total
    doc.currency_code = compiled.currency.code
    doc.currency_symbol = compiled.currency.symbol
    doc.currency_decimal_digits = compiled.currency.decimal_digits
    doc.tax_rate_id = compiled.tax_rate_id
    doc.tax_rate_percent = compiled.tax_rate_percent
    doc.tax_source = compiled.tax_source
    doc.items_data = compiled.items_data()
    doc.legacy_item_ids = None


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def create_quote(
    *,
    org_id: int,
    repair_id: int,
    tax: Any = None,
    tax_rate_id: Optional[int] = None,
    currency_code: Optional[str] = None,
    notes: Optional[str] = None,
    expiration_date: Optional[datetime] = None,
) -> Quote:
    """Snapshot the ticket's live items into a new pending quote."""
    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    if find_active_quote(org_id=org_id, repair_id=ticket.id) is not None:
        raise ConflictError("Repair already has an active quote")

    explicit_tax = _check_explicit_tax(tax)
    currency, tax_rate = _resolve_context(
        org_id, currency_code=currency_code, tax_rate_id=tax_rate_id, explicit_tax=explicit_tax,
    )
    compiled = compile_document(
        ticket, _live_snapshots(ticket.id), currency.currency, tax_rate,
        kind=KIND_QUOTE, explicit_tax=explicit_tax,
    )
    if compiled.tax_defaulted:
        current_app.logger.warning("Quote for repair %s compiled without tax", ticket.id)

    expires = expiration_date or days_from_now(current_app.config.get("QUOTE_VALIDITY_DAYS", 30))

    def _op() -> Quote:
        quote = Quote(
            org_id=org_id,
            repair_id=ticket.id,
            document_number=generate_document_number(QUOTE_PREFIX),
            status="pending",
            notes=notes,
            expiration_date=expires,
        )
        _apply_compiled(quote, compiled)
        db.session.add(quote)
        db.session.commit()
        return quote

    return _run_numbered(_op, prefix=QUOTE_PREFIX)


def update_quote(*, org_id: int, quote_id: int, patch: dict) -> Quote:
    """
    Edit status, notes, expiration or explicit tax. Totals are recomputed
    from the stored snapshot, never from the ticket's live items.
    """
    quote = get_quote(org_id=org_id, quote_id=quote_id)

    if "tax" in patch:
        if quote.status != "pending":
            raise ConflictError("Only pending quotes can change tax")
        explicit_tax = _check_explicit_tax(patch["tax"])
        tax_rate = None
        if explicit_tax is None:
            tax_rate = _stored_tax_rate(quote) or _default_tax_rate_or_none(org_id)
        compiled = compile_document(
            quote.repair, load_document_items(quote), quote.currency_info(), tax_rate,
            kind=KIND_QUOTE, explicit_tax=explicit_tax,
        )
        _apply_compiled(quote, compiled)

    status = patch.get("status")
    if status is not None and status != quote.status:
        if status not in QUOTE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(QUOTE_STATUSES)}")
        if quote.status != "pending":
            raise ConflictError(f"Quote is already {quote.status}")
        quote.status = status
        quote.repair.customer_approval = status == "approved"

    if "notes" in patch:
        quote.notes = patch["notes"]
    if "expiration_date" in patch:
        quote.expiration_date = patch["expiration_date"]

    db.session.commit()
    return quote


def regenerate_quote(
    *,
    org_id: int,
    quote_id: int,
    tax: Any = None,
    tax_rate_id: Optional[int] = None,
    currency_code: Optional[str] = None,
) -> Quote:
    """Re-snapshot a pending quote from the ticket's current live items."""
    quote = get_quote(org_id=org_id, quote_id=quote_id)
    if quote.status != "pending":
        raise ConflictError("Only pending quotes can be regenerated")

    explicit_tax = _check_explicit_tax(tax)
    if explicit_tax is None and tax_rate_id is None and quote.tax_source == TAX_SOURCE_EXPLICIT:
        explicit_tax = Decimal(quote.tax)

    currency, tax_rate = _resolve_context(
        org_id,
        currency_code=currency_code or quote.currency_code,
        tax_rate_id=tax_rate_id,
        explicit_tax=explicit_tax,
    )
    compiled = compile_document(
        quote.repair, _live_snapshots(quote.repair_id), currency.currency, tax_rate,
        kind=KIND_QUOTE, explicit_tax=explicit_tax,
    )
    _apply_compiled(quote, compiled)
    db.session.commit()
    return quote


def delete_quote(*, org_id: int, quote_id: int) -> None:
    quote = get_quote(org_id=org_id, quote_id=quote_id)
    quote.is_deleted = True
    quote.deleted_at = utcnow()
    db.session.commit()


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

def create_invoice(
    *,
    org_id: int,
    repair_id: int,
    from_quote_id: Optional[int] = None,
    tax: Any = None,
    tax_rate_id: Optional[int] = None,
    currency_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Issue an invoice for a ticket.

    From an approved quote the quote's snapshot, currency and tax basis are
    copied; otherwise the ticket's live items are snapshotted. The ticket's
    total_cost becomes the invoice total.
    """
    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    if find_active_invoice(org_id=org_id, repair_id=ticket.id) is not None:
        raise ConflictError("Repair already has an invoice")

    explicit_tax = _check_explicit_tax(tax)

    if from_quote_id is not None:
        quote = get_quote(org_id=org_id, quote_id=from_quote_id)
        if quote.repair_id != ticket.id:
            raise DocumentError(
                "Quote belongs to a different repair",
                details={"quote_id": quote.id, "repair_id": ticket.id},
            )
        if quote.status != "approved":
            raise ConflictError("Only approved quotes can be invoiced")
        if explicit_tax is None and quote.tax_source == TAX_SOURCE_EXPLICIT:
            explicit_tax = Decimal(quote.tax)
        compiled = compile_document(
            ticket, load_document_items(quote), quote.currency_info(), _stored_tax_rate(quote),
            kind=KIND_INVOICE, explicit_tax=explicit_tax,
        )
    else:
        currency, tax_rate = _resolve_context(
            org_id, currency_code=currency_code, tax_rate_id=tax_rate_id, explicit_tax=explicit_tax,
        )
        compiled = compile_document(
            ticket, _live_snapshots(ticket.id), currency.currency, tax_rate,
            kind=KIND_INVOICE, explicit_tax=explicit_tax,
        )

    if compiled.tax_defaulted:
        current_app.logger.warning("Invoice for repair %s compiled without tax", ticket.id)

    def _op() -> Invoice:
        invoice = Invoice(
            org_id=org_id,
            repair_id=ticket.id,
            document_number=generate_document_number(INVOICE_PREFIX),
            status="unpaid",
            amount_paid=Decimal("0"),
            notes=notes,
        )
        _apply_compiled(invoice, compiled)
        db.session.add(invoice)
        repair = db.session.get(RepairTicket, ticket.id)
        repair.total_cost = compiled.total
        db.session.commit()
        return invoice

    return _run_numbered(_op, prefix=INVOICE_PREFIX)


def record_payment(
    *,
    org_id: int,
    invoice_id: int,
    amount: Any,
    payment_method: str,
    payment_reference: Optional[str] = None,
) -> Invoice:
    """
    Apply a payment. Status follows cumulative amount_paid: unpaid -> partial
    -> paid. Paying in full stamps date_paid and completes a ticket that is
    ready_for_pickup.
    """
    try:
        value = to_decimal(amount)
    except ValueError:
        raise ValidationError("amount must be a number")
    if value <= 0:
        raise ValidationError("amount must be > 0")
    if not payment_method:
        raise ValidationError("payment_method is required")

    def _op() -> Invoice:
        invoice = get_invoice(org_id=org_id, invoice_id=invoice_id)
        if invoice.status == "paid":
            raise ConflictError("Invoice is already paid")

        digits = invoice.currency_decimal_digits
        balance = invoice.balance_due
        if round_for_currency(value, digits) > round_for_currency(balance, digits):
            raise ValidationError(
                f"Payment exceeds balance due ({format_currency(balance, invoice.currency_info())})"
            )

        paid = Decimal(invoice.amount_paid or 0) + value
        # settled once nothing is owed at the currency's display precision
        settled = round_for_currency(Decimal(invoice.total) - paid, digits) <= 0
        invoice.amount_paid = Decimal(invoice.total) if settled else quantize_internal(paid)
        invoice.payment_method = payment_method
        if payment_reference:
            invoice.payment_reference = payment_reference

        if settled:
            invoice.status = "paid"
            invoice.date_paid = utcnow()
            ticket = invoice.repair
            if ticket.status == "ready_for_pickup":
                apply_status(ticket, "completed")
        else:
            invoice.status = "partial"

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def delete_invoice(*, org_id: int, invoice_id: int) -> None:
    invoice = get_invoice(org_id=org_id, invoice_id=invoice_id)
    if invoice.status == "paid":
        raise ConflictError("Paid invoices cannot be deleted")
    invoice.is_deleted = True
    invoice.deleted_at = utcnow()
    db.session.commit()


# ---------------------------------------------------------------------------
# Printable value and maintenance
# ---------------------------------------------------------------------------

def build_printable(*, org_id: int, doc) -> dict:
    """
    Everything the rendering layer needs without re-querying currency state:
    title, parties, items with formatted line totals and the document's own
    currency convention.
    """
    if doc.org_id != org_id:
        raise TenantAccessError("Document not found")

    kind = KIND_QUOTE if isinstance(doc, Quote) else KIND_INVOICE
    currency = doc.currency_info()
    ticket = doc.repair
    items = load_document_items(doc)

    dates = (
        {"date_created": to_utc_z(doc.date_created), "expiration_date": to_utc_z(doc.expiration_date)}
        if kind == KIND_QUOTE
        else {"date_issued": to_utc_z(doc.date_issued), "date_paid": to_utc_z(doc.date_paid)}
    )

    if doc.tax_source == TAX_SOURCE_RATE and doc.tax_rate_percent is not None:
        tax_label = f"Tax ({Decimal(doc.tax_rate_percent).normalize():f}%)"
    else:
        tax_label = "Tax"

    return {
        "title": DOCUMENT_TITLES[kind],
        "kind": kind,
        "document_number": doc.document_number,
        "status": doc.status,
        **dates,
        "shop": doc.organization.contact_dict() if doc.organization else None,
        "ticket_number": ticket.ticket_number if ticket else None,
        "customer": ticket.customer.to_dict() if ticket and ticket.customer else None,
        "device": ticket.device.to_dict() if ticket and ticket.device else None,
        "currency": {
            "code": currency.code,
            "symbol": currency.symbol,
            "decimal_digits": currency.decimal_digits,
        },
        "items": [
            {
                "description": item.description,
                "item_type": item.item_type,
                "quantity": item.quantity,
                "unit_price": format_currency(item.unit_price, currency),
                "line_total": format_currency(item.line_total, currency),
            }
            for item in items
        ],
        "empty_message": "No items" if not items else None,
        "tax_label": tax_label,
        "tax_defaulted": doc.tax_defaulted,
        "subtotal": format_currency(doc.subtotal, currency),
        "tax": format_currency(doc.tax, currency),
        "total": format_currency(doc.total, currency),
        "notes": doc.notes,
    }


def migrate_legacy_snapshots() -> int:
    """
    One-time conversion of legacy_item_ids into items_data. Totals are left
    as issued. Returns the number of documents converted.
    """
    converted = 0
    for model in (Quote, Invoice):
        docs = (
            db.session.query(model)
            .filter(model.items_data.is_(None), model.legacy_item_ids.isnot(None))
            .all()
        )
        for doc in docs:
            doc.items_data = [item.to_dict() for item in load_document_items(doc)]
            doc.legacy_item_ids = None
            converted += 1
    if converted:
        db.session.commit()
        current_app.logger.info("Converted %d legacy document snapshots", converted)
    return converted
