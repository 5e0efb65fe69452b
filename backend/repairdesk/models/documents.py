from __future__ import annotations

import json
from decimal import Decimal

from sqlalchemy.orm import declared_attr
from sqlalchemy.types import TypeDecorator

from ..extensions import db
from repairdesk.money import CurrencyInfo, format_currency, round_for_currency
from repairdesk.time_utils import to_utc_z, utcnow


QUOTE_STATUSES = ("pending", "approved", "rejected")
INVOICE_STATUSES = ("unpaid", "partial", "paid")

TAX_SOURCE_EXPLICIT = "explicit"
TAX_SOURCE_RATE = "rate"
TAX_SOURCE_NONE = "none"
TAX_SOURCES = (TAX_SOURCE_EXPLICIT, TAX_SOURCE_RATE, TAX_SOURCE_NONE)


class SnapshotJSON(TypeDecorator):
    """
    JSON stored as TEXT.

    Loading never raises: text that is not valid JSON comes back as the raw
    string, and parse_snapshot reports it as a SnapshotError so readers can
    fall back to the live items.
    """

    impl = db.Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return value


class FinancialDocumentMixin:
    """
    Columns shared by quotes and invoices.

    A document is a snapshot: items_data holds the exact line items it was
    compiled from, and currency_code/currency_symbol/currency_decimal_digits
    hold the convention its totals were computed under. Later edits to the
    ticket or to the currency registry never change an issued document.

    legacy_item_ids (a JSON list of repair_items ids) only exists as input
    for the one-time snapshot migration.
    """

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    @declared_attr
    def repair_id(cls):
        return db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=False, index=True)

    @declared_attr
    def tax_rate_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tax_rates.id"), nullable=True)

    # Totals in major units, INTERNAL_QUANTUM precision
    subtotal = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    # Currency snapshot
    currency_code = db.Column(db.String(8), nullable=False)
    currency_symbol = db.Column(db.String(8), nullable=False)
    currency_decimal_digits = db.Column(db.Integer, nullable=False, default=2)

    tax_rate_percent = db.Column(db.Numeric(7, 4), nullable=True)
    tax_source = db.Column(db.String(16), nullable=False, default=TAX_SOURCE_NONE)

    items_data = db.Column(SnapshotJSON, nullable=True)
    legacy_item_ids = db.Column(SnapshotJSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @declared_attr
    def repair(cls):
        return db.relationship("RepairTicket")

    @declared_attr
    def organization(cls):
        return db.relationship("Organization")

    @property
    def tax_defaulted(self) -> bool:
        return self.tax_source == TAX_SOURCE_NONE

    def currency_info(self) -> CurrencyInfo:
        """Currency convention captured when the document was compiled."""
        return CurrencyInfo(
            code=self.currency_code,
            name=self.currency_code,
            symbol=self.currency_symbol,
            decimal_digits=self.currency_decimal_digits,
        )

    def _amounts_dict(self) -> dict:
        currency = self.currency_info()
        digits = currency.decimal_digits
        amounts = {
            "subtotal": Decimal(self.subtotal),
            "tax": Decimal(self.tax),
            "total": Decimal(self.total),
        }
        data = {k: str(round_for_currency(v, digits)) for k, v in amounts.items()}
        data["display"] = {k: format_currency(v, currency) for k, v in amounts.items()}
        return data

    def _base_dict(self) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "repair_id": self.repair_id,
            "document_number": self.document_number,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
            "currency_decimal_digits": self.currency_decimal_digits,
            "tax_rate_id": self.tax_rate_id,
            "tax_rate_percent": str(self.tax_rate_percent) if self.tax_rate_percent is not None else None,
            "tax_source": self.tax_source,
            "tax_defaulted": self.tax_defaulted,
            "status": self.status,
            "notes": self.notes,
            "items_data": self.items_data if isinstance(self.items_data, list) else [],
        }
        data.update(self._amounts_dict())
        return data


class Quote(FinancialDocumentMixin, db.Model):
    """
    Price quote for a repair.

    LIFECYCLE: pending -> approved | rejected. At most one quote per ticket
    is active (not rejected, not deleted).
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.Index("ix_quotes_org_repair", "org_id", "repair_id"),
        {"sqlite_autoincrement": True},
    )

    status = db.Column(db.String(16), nullable=False, default="pending")
    date_created = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expiration_date = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return not self.is_deleted and self.status != "rejected"

    def to_dict(self) -> dict:
        data = self._base_dict()
        data["quote_number"] = self.document_number
        data["date_created"] = to_utc_z(self.date_created)
        data["expiration_date"] = to_utc_z(self.expiration_date)
        return data


class Invoice(FinancialDocumentMixin, db.Model):
    """
    Invoice for a repair.

    LIFECYCLE: unpaid -> partial -> paid, driven by cumulative amount_paid.
    Only the external gateway's reference id is persisted, never card data.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_org_repair", "org_id", "repair_id"),
        db.Index("ix_invoices_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    status = db.Column(db.String(16), nullable=False, default="unpaid")
    date_issued = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    date_paid = db.Column(db.DateTime(timezone=True), nullable=True)

    amount_paid = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total) - Decimal(self.amount_paid or 0)

    def to_dict(self) -> dict:
        data = self._base_dict()
        currency = self.currency_info()
        data["invoice_number"] = self.document_number
        data["date_issued"] = to_utc_z(self.date_issued)
        data["date_paid"] = to_utc_z(self.date_paid)
        data["amount_paid"] = str(round_for_currency(Decimal(self.amount_paid or 0), currency.decimal_digits))
        data["balance_due"] = str(round_for_currency(self.balance_due, currency.decimal_digits))
        data["display"]["amount_paid"] = format_currency(self.amount_paid or 0, currency)
        data["display"]["balance_due"] = format_currency(self.balance_due, currency)
        data["payment_method"] = self.payment_method
        data["payment_reference"] = self.payment_reference
        return data
