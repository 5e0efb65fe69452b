# Overview: Pure quote / invoice assembly from a ticket, its line items and a resolved currency and tax rate.

"""
Document Compiler

No database access happens here: callers pass the ticket, the exact line
items to bill, the resolved CurrencyInfo and an optional TaxRateInfo.

ARITHMETIC:
- subtotal = sum(unit_price * quantity), never rounded per line
- tax      = explicit amount if given, else subtotal * rate / 100,
             else 0 with tax_source "none" (callers surface the flag)
- total    = subtotal + tax
Tax and total are held at INTERNAL_QUANTUM. Rounding to the currency's
decimal digits happens only in display().
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

from ..models.documents import TAX_SOURCE_EXPLICIT, TAX_SOURCE_NONE, TAX_SOURCE_RATE
from ..money import (
    ZERO,
    CurrencyInfo,
    TaxRateInfo,
    format_currency,
    quantize_internal,
    round_for_currency,
    to_decimal,
)
from ..validation import ITEM_TYPES


KIND_QUOTE = "quote"
KIND_INVOICE = "invoice"

DOCUMENT_TITLES = {KIND_QUOTE: "Repair Quote", KIND_INVOICE: "Invoice"}


class SnapshotError(ValueError):
    """Stored items_data could not be parsed back into line items."""
    pass


@dataclass(frozen=True)
class LineItemSnapshot:
    description: str
    quantity: int
    unit_price: Decimal
    item_type: str
    is_completed: bool = False
    inventory_item_id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_model(cls, item) -> "LineItemSnapshot":
        return cls(
            description=item.description,
            quantity=int(item.quantity),
            unit_price=to_decimal(item.unit_price),
            item_type=item.item_type,
            is_completed=bool(item.is_completed),
            inventory_item_id=item.inventory_item_id,
        )

    @classmethod
    def from_dict(cls, data: Any) -> "LineItemSnapshot":
        """Strict parse of one stored snapshot entry."""
        if not isinstance(data, dict):
            raise SnapshotError(f"snapshot item must be an object, got {type(data).__name__}")
        try:
            description = data["description"]
            quantity = data["quantity"]
            unit_price = to_decimal(data["unit_price"])
            item_type = data["item_type"]
        except KeyError as exc:
            raise SnapshotError(f"snapshot item missing {exc.args[0]}") from exc
        except ValueError as exc:
            raise SnapshotError(f"snapshot item has invalid unit_price: {exc}") from exc

        if not isinstance(description, str):
            raise SnapshotError("snapshot item description must be text")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise SnapshotError("snapshot item quantity must be a positive integer")
        if unit_price < 0:
            raise SnapshotError("snapshot item unit_price must be >= 0")
        if item_type not in ITEM_TYPES:
            raise SnapshotError(f"snapshot item has unknown item_type {item_type!r}")

        return cls(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            item_type=item_type,
            is_completed=bool(data.get("is_completed", False)),
            inventory_item_id=data.get("inventory_item_id"),
        )

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "item_type": self.item_type,
            "is_completed": self.is_completed,
            "inventory_item_id": self.inventory_item_id,
        }


def parse_snapshot(data: Any) -> tuple[LineItemSnapshot, ...]:
    """
    Stored items_data back into line items. Raw text (a value the column
    could not decode) is parsed here so bad JSON surfaces as SnapshotError.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise SnapshotError(f"items_data is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise SnapshotError("items_data must be a list")
    return tuple(LineItemSnapshot.from_dict(entry) for entry in data)


@dataclass(frozen=True)
class CompiledDocument:
    kind: str
    repair_id: Optional[int]
    ticket_number: Optional[str]
    items: tuple[LineItemSnapshot, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: CurrencyInfo
    tax_rate_percent: Optional[Decimal]
    tax_source: str
    tax_rate_id: Optional[int] = None
    warnings: tuple[str, ...] = field(default=())

    @property
    def tax_defaulted(self) -> bool:
        return self.tax_source == TAX_SOURCE_NONE

    def items_data(self) -> list[dict]:
        return [item.to_dict() for item in self.items]

    def display(self) -> dict:
        """Amounts rounded to the currency's digits, plus formatted strings."""
        digits = self.currency.decimal_digits
        amounts = {"subtotal": self.subtotal, "tax": self.tax, "total": self.total}
        data = {k: str(round_for_currency(v, digits)) for k, v in amounts.items()}
        data["formatted"] = {k: format_currency(v, self.currency) for k, v in amounts.items()}
        return data


def compute_subtotal(items: Iterable[LineItemSnapshot]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def compute_tax(
    subtotal: Decimal,
    tax_rate: Optional[TaxRateInfo],
    explicit_tax: Any = None,
) -> tuple[Decimal, str]:
    if explicit_tax is not None:
        amount = to_decimal(explicit_tax)
        if amount < 0:
            raise ValueError("tax must be >= 0")
        return quantize_internal(amount), TAX_SOURCE_EXPLICIT
    if tax_rate is not None:
        return quantize_internal(subtotal * tax_rate.rate / Decimal(100)), TAX_SOURCE_RATE
    return ZERO, TAX_SOURCE_NONE


def compile_document(
    ticket,
    line_items: Iterable[Any],
    currency: CurrencyInfo,
    tax_rate: Optional[TaxRateInfo],
    *,
    kind: str,
    explicit_tax: Any = None,
) -> CompiledDocument:
    """
    Build a quote or invoice value.

    line_items may be LineItemSnapshot values or RepairItem-like objects;
    the result always holds snapshots. An empty item list is allowed and
    yields a zero subtotal.
    """
    if kind not in DOCUMENT_TITLES:
        raise ValueError(f"unknown document kind: {kind}")
    if currency is None:
        raise ValueError("currency is required")

    items = tuple(
        item if isinstance(item, LineItemSnapshot) else LineItemSnapshot.from_model(item)
        for item in line_items
    )
    subtotal = compute_subtotal(items)
    tax, tax_source = compute_tax(subtotal, tax_rate, explicit_tax)

    warnings = ("tax_defaulted_to_zero",) if tax_source == TAX_SOURCE_NONE else ()

    return CompiledDocument(
        kind=kind,
        repair_id=getattr(ticket, "id", None),
        ticket_number=getattr(ticket, "ticket_number", None),
        items=items,
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        currency=currency,
        tax_rate_percent=tax_rate.rate if tax_rate is not None and tax_source == TAX_SOURCE_RATE else None,
        tax_source=tax_source,
        tax_rate_id=tax_rate.id if tax_rate is not None and tax_source == TAX_SOURCE_RATE else None,
        warnings=warnings,
    )
