# Overview: Flask API routes for repair tickets and line items; parses input and returns JSON responses.

# backend/repairdesk/routes/repairs.py
"""
Repair ticket routes.

MULTI-TENANT: Tickets, items and the customers / devices / technicians /
inventory items they reference must all belong to g.org_id.
"""
from flask import Blueprint, request, g
from ..services import repair_service
from ..services.concurrency import NumberCollisionError
from ..services.repair_service import RepairError
from ..services.tenant_service import TenantAccessError
from ..models import RepairItem, RepairTicket
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_repair,
    enforce_rules_repair_item,
    ValidationError,
)
from ..decorators import require_org

REPAIR_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id", "device_id", "technician_id", "status", "issue", "notes",
        "diagnostic_notes", "intake_date", "estimated_completion_date",
        "priority_level", "is_under_warranty", "customer_approval",
    },
    required_on_create={"customer_id", "issue"},
)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"inventory_item_id", "description", "quantity", "unit_price", "item_type", "is_completed"},
    required_on_create=set(),
)

repairs_bp = Blueprint("repairs", __name__, url_prefix="/api/repairs")


def _ticket_dict(ticket: RepairTicket) -> dict:
    data = ticket.to_dict()
    data["is_urgent"] = repair_service.is_urgent(ticket)
    return data


def _flag(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() in {"1", "true", "yes"}


@repairs_bp.get("")
@require_org
def list_repairs():
    """
    Query params (all optional):
    - customer_id, technician_id: int
    - status: one of the repair statuses
    - urgent: bool
    """
    try:
        tickets = repair_service.list_repairs(
            org_id=g.org_id,
            customer_id=request.args.get("customer_id", type=int),
            technician_id=request.args.get("technician_id", type=int),
            status=request.args.get("status"),
            urgent=_flag("urgent"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [_ticket_dict(t) for t in tickets], "count": len(tickets)}


@repairs_bp.post("")
@require_org
def create_repair():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=RepairTicket, payload=payload, policy=REPAIR_POLICY, partial=False)
        enforce_rules_repair(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        ticket = repair_service.create_repair(org_id=g.org_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except RepairError as e:
        return {"error": str(e), "details": e.details}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    except NumberCollisionError:
        return {"error": "Could not allocate a ticket number, please retry"}, 503

    return _ticket_dict(ticket), 201


@repairs_bp.get("/<int:repair_id>")
@require_org
def get_repair(repair_id: int):
    try:
        ticket = repair_service.get_repair(org_id=g.org_id, repair_id=repair_id)
    except TenantAccessError:
        return {"error": "Repair not found"}, 404
    return _ticket_dict(ticket)


@repairs_bp.get("/<int:repair_id>/details")
@require_org
def get_repair_details(repair_id: int):
    try:
        return repair_service.get_repair_details(org_id=g.org_id, repair_id=repair_id)
    except TenantAccessError:
        return {"error": "Repair not found"}, 404


@repairs_bp.put("/<int:repair_id>")
@require_org
def update_repair(repair_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=RepairTicket, payload=payload, policy=REPAIR_POLICY, partial=True)
        enforce_rules_repair(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        ticket = repair_service.update_repair(org_id=g.org_id, repair_id=repair_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except RepairError as e:
        return {"error": str(e), "details": e.details}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    return _ticket_dict(ticket)


@repairs_bp.put("/<int:repair_id>/status")
@require_org
def update_repair_status(repair_id: int):
    """Body: {"status": str}. Any known status may be written."""
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        return {"error": "status is required"}, 400

    try:
        ticket = repair_service.update_status(org_id=g.org_id, repair_id=repair_id, status=status)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError:
        return {"error": "Repair not found"}, 404
    return _ticket_dict(ticket)


@repairs_bp.delete("/<int:repair_id>")
@require_org
def delete_repair(repair_id: int):
    try:
        repair_service.delete_repair(org_id=g.org_id, repair_id=repair_id)
    except TenantAccessError:
        return {"error": "Repair not found"}, 404
    return {"ok": True}, 200


@repairs_bp.get("/<int:repair_id>/items")
@require_org
def list_items(repair_id: int):
    try:
        ticket = repair_service.get_repair(org_id=g.org_id, repair_id=repair_id)
    except TenantAccessError:
        return {"error": "Repair not found"}, 404
    items = ticket.live_items
    return {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "subtotal": str(repair_service.live_subtotal(ticket)),
    }


@repairs_bp.post("/<int:repair_id>/items")
@require_org
def add_item(repair_id: int):
    """
    Body: description, quantity (>= 1), unit_price (>= 0), item_type (part|service).
    With inventory_item_id, description / unit_price / item_type default from the inventory item.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=RepairItem, payload=payload, policy=ITEM_POLICY, partial=False)
        item = repair_service.add_item(org_id=g.org_id, repair_id=repair_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    return item.to_dict(), 201


@repairs_bp.put("/<int:repair_id>/items/<int:item_id>")
@require_org
def update_item(repair_id: int, item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=RepairItem, payload=payload, policy=ITEM_POLICY, partial=True)
        enforce_rules_repair_item(patch)
        item = repair_service.update_item(org_id=g.org_id, repair_id=repair_id, item_id=item_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    return item.to_dict()


@repairs_bp.delete("/<int:repair_id>/items/<int:item_id>")
@require_org
def delete_item(repair_id: int, item_id: int):
    try:
        repair_service.delete_item(org_id=g.org_id, repair_id=repair_id, item_id=item_id)
    except TenantAccessError:
        return {"error": "Repair item not found"}, 404
    return {"ok": True}, 200
