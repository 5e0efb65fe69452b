# Overview: Service-layer operations for repair tickets and their line items.

"""
Repair tickets

Ticket status is not a strict automaton: any known status may be written.
Only completed and cancelled are terminal, and those two are the only
statuses excluded from urgent / active views. Urgency is computed by
is_urgent() everywhere it is shown.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import (
    Customer,
    Device,
    InventoryItem,
    Invoice,
    Quote,
    RepairItem,
    RepairTicket,
    Technician,
)
from ..models.repairs import REPAIR_STATUSES, TERMINAL_STATUSES, URGENT_PRIORITIES
from ..money import ZERO, to_decimal
from ..time_utils import utcnow
from ..validation import ValidationError, enforce_rules_repair_item
from .concurrency import run_with_retry
from .tenant_service import TenantAccessError, require_owned, scoped_query


class RepairError(Exception):
    """Raised for repair ticket operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def is_active(status: Optional[str]) -> bool:
    return status is not None and status not in TERMINAL_STATUSES


def is_urgent(ticket) -> bool:
    """Priority 1 or 2 and not completed/cancelled. Works on any object with priority_level and status."""
    return getattr(ticket, "priority_level", None) in URGENT_PRIORITIES and is_active(getattr(ticket, "status", None))


def generate_ticket_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"RT-{now:%y%m}{secrets.randbelow(10000):04d}"


def _validate_status(status: str) -> str:
    if status not in REPAIR_STATUSES:
        raise ValidationError(f"Unknown status: {status}. Allowed: {', '.join(REPAIR_STATUSES)}")
    return status


def _validate_links(org_id: int, customer_id: int, device_id: Optional[int], technician_id: Optional[int]) -> None:
    require_owned(Customer, customer_id, org_id, label="Customer")
    if device_id is not None:
        device = require_owned(Device, device_id, org_id, label="Device")
        if device.customer_id != customer_id:
            raise RepairError(
                "Device does not belong to this customer",
                details={"device_id": device_id, "customer_id": customer_id},
            )
    if technician_id is not None:
        require_owned(Technician, technician_id, org_id, label="Technician")


def apply_status(ticket: RepairTicket, status: str) -> None:
    _validate_status(status)
    ticket.status = status
    if status == "completed" and ticket.actual_completion_date is None:
        ticket.actual_completion_date = utcnow()


def create_repair(*, org_id: int, patch: dict) -> RepairTicket:
    """
    Open a ticket. Ticket numbers carry a random suffix; a unique collision
    is retried with a new number.
    """
    status = _validate_status(patch.get("status") or "intake")
    _validate_links(org_id, patch["customer_id"], patch.get("device_id"), patch.get("technician_id"))

    def _op() -> RepairTicket:
        ticket = RepairTicket(org_id=org_id, ticket_number=generate_ticket_number())
        for key, value in patch.items():
            if key == "status" or value is None:
                continue
            setattr(ticket, key, value)
        apply_status(ticket, status)
        db.session.add(ticket)
        db.session.commit()
        return ticket

    attempts = current_app.config.get("DOCUMENT_NUMBER_MAX_ATTEMPTS", 5)
    return run_with_retry(_op, attempts=attempts)


def get_repair(*, org_id: int, repair_id: int) -> RepairTicket:
    return require_owned(RepairTicket, repair_id, org_id, label="Repair")


def list_repairs(
    *,
    org_id: int,
    customer_id: Optional[int] = None,
    technician_id: Optional[int] = None,
    status: Optional[str] = None,
    urgent: Optional[bool] = None,
) -> list[RepairTicket]:
    query = scoped_query(RepairTicket, org_id)
    if customer_id is not None:
        query = query.filter(RepairTicket.customer_id == customer_id)
    if technician_id is not None:
        query = query.filter(RepairTicket.technician_id == technician_id)
    if status:
        query = query.filter(RepairTicket.status == _validate_status(status))

    tickets = query.order_by(RepairTicket.intake_date.desc(), RepairTicket.id.desc()).all()
    if urgent is not None:
        tickets = [t for t in tickets if is_urgent(t) == urgent]
    return tickets


def update_repair(*, org_id: int, repair_id: int, patch: dict) -> RepairTicket:
    ticket = get_repair(org_id=org_id, repair_id=repair_id)

    customer_id = patch.get("customer_id") or ticket.customer_id
    device_id = patch["device_id"] if "device_id" in patch else ticket.device_id
    technician_id = patch["technician_id"] if "technician_id" in patch else ticket.technician_id
    _validate_links(org_id, customer_id, device_id, technician_id)

    for key, value in patch.items():
        if key == "status":
            continue
        setattr(ticket, key, value)
    if patch.get("status"):
        apply_status(ticket, patch["status"])

    db.session.commit()
    return ticket


def update_status(*, org_id: int, repair_id: int, status: str) -> RepairTicket:
    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    apply_status(ticket, status)
    db.session.commit()
    return ticket


def delete_repair(*, org_id: int, repair_id: int) -> None:
    """Soft delete the ticket together with its items and documents."""
    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    now = utcnow()
    ticket.is_deleted = True
    ticket.deleted_at = now
    for item in ticket.live_items:
        item.is_deleted = True
        item.deleted_at = now
    for model in (Quote, Invoice):
        for doc in scoped_query(model, org_id).filter(model.repair_id == ticket.id).all():
            doc.is_deleted = True
            doc.deleted_at = now
    db.session.commit()


def get_repair_details(*, org_id: int, repair_id: int) -> dict:
    """Ticket with its customer, device, technician, live items and active documents."""
    from .document_service import find_active_invoice, find_active_quote

    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    quote = find_active_quote(org_id=org_id, repair_id=ticket.id)
    invoice = find_active_invoice(org_id=org_id, repair_id=ticket.id)

    data = ticket.to_dict()
    data["is_urgent"] = is_urgent(ticket)
    data["customer"] = ticket.customer.to_dict() if ticket.customer else None
    data["device"] = ticket.device.to_dict() if ticket.device else None
    data["technician"] = ticket.technician.to_dict() if ticket.technician else None
    data["items"] = [item.to_dict() for item in ticket.live_items]
    data["live_subtotal"] = str(live_subtotal(ticket))
    data["quote"] = quote.to_dict() if quote else None
    data["invoice"] = invoice.to_dict() if invoice else None
    return data


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

def list_items(*, org_id: int, repair_id: int) -> list[RepairItem]:
    return get_repair(org_id=org_id, repair_id=repair_id).live_items


def live_subtotal(ticket: RepairTicket) -> Decimal:
    return sum((item.line_total for item in ticket.live_items), ZERO)


def _get_item(org_id: int, repair_id: int, item_id: int) -> RepairItem:
    item = require_owned(RepairItem, item_id, org_id, label="Repair item")
    if item.repair_id != repair_id:
        raise TenantAccessError("Repair item not found")
    return item


def add_item(*, org_id: int, repair_id: int, patch: dict) -> RepairItem:
    """
    Attach a part or service. When inventory_item_id is given, the inventory
    item's name and price are used for any field the caller left out.
    """
    ticket = get_repair(org_id=org_id, repair_id=repair_id)
    values = dict(patch)

    inventory_item_id = values.get("inventory_item_id")
    if inventory_item_id is not None:
        inventory = require_owned(InventoryItem, inventory_item_id, org_id, label="Inventory item")
        values.setdefault("description", inventory.name)
        values.setdefault("unit_price", to_decimal(inventory.price))
        values.setdefault("item_type", "part")

    values.setdefault("quantity", 1)
    missing = sorted(k for k in ("description", "unit_price", "item_type") if values.get(k) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    enforce_rules_repair_item(values)

    item = RepairItem(org_id=org_id, repair_id=ticket.id, **values)
    db.session.add(item)
    db.session.commit()
    return item


def update_item(*, org_id: int, repair_id: int, item_id: int, patch: dict) -> RepairItem:
    item = _get_item(org_id, repair_id, item_id)
    if patch.get("inventory_item_id") is not None:
        require_owned(InventoryItem, patch["inventory_item_id"], org_id, label="Inventory item")
    enforce_rules_repair_item(patch)
    for key, value in patch.items():
        setattr(item, key, value)
    db.session.commit()
    return item


def delete_item(*, org_id: int, repair_id: int, item_id: int) -> None:
    item = _get_item(org_id, repair_id, item_id)
    item.is_deleted = True
    item.deleted_at = utcnow()
    db.session.commit()
