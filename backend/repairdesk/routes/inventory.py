# Overview: Flask API routes for parts inventory; parses input and returns JSON responses.

# backend/repairdesk/routes/inventory.py
from flask import Blueprint, request, g
from ..services import inventory_service
from ..services.tenant_service import TenantAccessError
from ..models import InventoryItem
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_inventory_item,
    ValidationError,
    ConflictError,
)
from ..decorators import require_org

INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category", "sku", "price", "cost",
        "quantity", "min_level", "location", "supplier", "is_active",
    },
    required_on_create={"name", "category", "price"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_org
def list_inventory():
    """
    Query params:
    - category: str (optional)
    - low_stock: bool (optional) - only items at or below min_level
    """
    low_stock = request.args.get("low_stock", "").lower() in {"1", "true", "yes"}
    items = inventory_service.list_inventory(
        org_id=g.org_id,
        category=request.args.get("category"),
        low_stock=low_stock,
    )
    return {"items": [i.to_dict() for i in items], "count": len(items)}


@inventory_bp.post("")
@require_org
def create_inventory_item():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
        enforce_rules_inventory_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.create_inventory_item(org_id=g.org_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    return item.to_dict(), 201


@inventory_bp.get("/<int:item_id>")
@require_org
def get_inventory_item(item_id: int):
    try:
        item = inventory_service.get_inventory_item(org_id=g.org_id, item_id=item_id)
    except TenantAccessError:
        return {"error": "Inventory item not found"}, 404
    return item.to_dict()


@inventory_bp.put("/<int:item_id>")
@require_org
def update_inventory_item(item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=True)
        enforce_rules_inventory_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.update_inventory_item(org_id=g.org_id, item_id=item_id, patch=patch)
    except TenantAccessError:
        return {"error": "Inventory item not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    return item.to_dict()


@inventory_bp.post("/<int:item_id>/adjust")
@require_org
def adjust_inventory(item_id: int):
    """Body: {"delta": int} - positive to receive stock, negative to consume."""
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.adjust_quantity(org_id=g.org_id, item_id=item_id, delta=payload.get("delta"))
    except TenantAccessError:
        return {"error": "Inventory item not found"}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    return item.to_dict()
