# Overview: Flask API routes for customers, devices and technicians; parses input and returns JSON responses.

# backend/repairdesk/routes/customers.py
"""
Customer, device and technician routes.

MULTI-TENANT: Everything is scoped to g.org_id (set by @require_org).
Rows belonging to another organization are reported as not found.
"""
from flask import Blueprint, request, g
from ..services import customer_service
from ..services.tenant_service import TenantAccessError
from ..models import Customer, Device, Technician
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import require_org

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "first_name", "last_name", "email", "phone",
        "address", "city", "state", "postal_code", "notes",
    },
    required_on_create={"first_name", "last_name"},
)

DEVICE_POLICY = ModelValidationPolicy(
    writable_fields={"device_type", "brand", "model", "serial_number", "condition", "accessories", "notes"},
    required_on_create={"device_type", "brand", "model"},
)

TECHNICIAN_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "email", "phone", "role", "specialty", "is_active"},
    required_on_create={"first_name", "last_name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api")


@customers_bp.get("/customers")
@require_org
def list_customers():
    """Query params: search (optional, matches name, email or phone)."""
    customers = customer_service.list_customers(org_id=g.org_id, search=request.args.get("search"))
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("/customers")
@require_org
def create_customer():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    customer = customer_service.create_customer(org_id=g.org_id, patch=patch)
    return customer.to_dict(), 201


@customers_bp.get("/customers/<int:customer_id>")
@require_org
def get_customer(customer_id: int):
    try:
        customer = customer_service.get_customer(org_id=g.org_id, customer_id=customer_id)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    return customer.to_dict()


@customers_bp.put("/customers/<int:customer_id>")
@require_org
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        customer = customer_service.update_customer(org_id=g.org_id, customer_id=customer_id, patch=patch)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    return customer.to_dict()


@customers_bp.get("/customers/<int:customer_id>/devices")
@require_org
def list_devices(customer_id: int):
    try:
        devices = customer_service.list_devices(org_id=g.org_id, customer_id=customer_id)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    return {"items": [d.to_dict() for d in devices], "count": len(devices)}


@customers_bp.post("/customers/<int:customer_id>/devices")
@require_org
def create_device(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Device, payload=payload, policy=DEVICE_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        device = customer_service.create_device(org_id=g.org_id, customer_id=customer_id, patch=patch)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    return device.to_dict(), 201


@customers_bp.get("/technicians")
@require_org
def list_technicians():
    active_only = request.args.get("active", "").lower() in {"1", "true", "yes"}
    technicians = customer_service.list_technicians(org_id=g.org_id, active_only=active_only)
    return {"items": [t.to_dict() for t in technicians], "count": len(technicians)}


@customers_bp.post("/technicians")
@require_org
def create_technician():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Technician, payload=payload, policy=TECHNICIAN_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    technician = customer_service.create_technician(org_id=g.org_id, patch=patch)
    return technician.to_dict(), 201
