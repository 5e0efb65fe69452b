# Overview: Flask API routes for currency and tax rate settings; parses input and returns JSON responses.

# backend/repairdesk/routes/settings.py
"""
Reference data settings: the organization's currencies and tax rates.

GET lists include core currencies (read-only for tenants). Any mutation
invalidates the organization's cached reference data.
"""
from flask import Blueprint, request, g
from ..services import currency_service, tax_service
from ..services.tenant_service import TenantAccessError
from ..models import Currency, TaxRate
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_currency,
    enforce_rules_tax_rate,
    ValidationError,
    ConflictError,
    ConfigurationError,
)
from ..decorators import require_org

CURRENCY_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "symbol", "decimal_digits", "is_default"},
    required_on_create={"code", "name", "symbol"},
)

CURRENCY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "symbol", "decimal_digits", "is_default"},
)

TAX_RATE_POLICY = ModelValidationPolicy(
    writable_fields={"country_code", "region_code", "name", "rate", "is_default"},
    required_on_create={"country_code", "name", "rate"},
)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/currencies")
@require_org
def list_currencies():
    currencies = currency_service.list_currencies(g.org_id)
    return {"items": [c.to_dict() for c in currencies], "count": len(currencies)}


@settings_bp.post("/currencies")
@require_org
def create_currency():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Currency, payload=payload, policy=CURRENCY_POLICY, partial=False)
        enforce_rules_currency(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        currency = currency_service.create_currency(org_id=g.org_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return currency.to_dict(), 201


@settings_bp.get("/currencies/default")
@require_org
def get_default_currency():
    """The organization's effective currency and which resolution rule produced it."""
    try:
        resolved = currency_service.resolve_currency(g.org_id)
    except ConfigurationError as e:
        return {"error": str(e), "error_type": "configuration"}, 409
    return resolved.to_dict()


@settings_bp.put("/currencies/<code>")
@require_org
def update_currency(code: str):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Currency, payload=payload, policy=CURRENCY_UPDATE_POLICY, partial=True)
        enforce_rules_currency(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        currency = currency_service.update_currency(org_id=g.org_id, code=code, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError:
        return {"error": "Currency not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    return currency.to_dict()


@settings_bp.get("/tax-rates")
@require_org
def list_tax_rates():
    rates = tax_service.list_tax_rates(g.org_id)
    return {"items": [r.to_dict() for r in rates], "count": len(rates)}


@settings_bp.post("/tax-rates")
@require_org
def create_tax_rate():
    """rate is a percentage: 7.25 means 7.25%."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=TaxRate, payload=payload, policy=TAX_RATE_POLICY, partial=False)
        enforce_rules_tax_rate(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        rate = tax_service.create_tax_rate(org_id=g.org_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    return rate.to_dict(), 201


@settings_bp.get("/tax-rates/default")
@require_org
def get_default_tax_rate():
    try:
        rate = tax_service.resolve_default_tax_rate(g.org_id)
    except ConfigurationError as e:
        return {"error": str(e), "error_type": "configuration"}, 409
    return rate.to_dict()


@settings_bp.put("/tax-rates/<int:tax_rate_id>")
@require_org
def update_tax_rate(tax_rate_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=TaxRate, payload=payload, policy=TAX_RATE_POLICY, partial=True)
        enforce_rules_tax_rate(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        rate = tax_service.update_tax_rate(org_id=g.org_id, tax_rate_id=tax_rate_id, patch=patch)
    except TenantAccessError:
        return {"error": "Tax rate not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    return rate.to_dict()
