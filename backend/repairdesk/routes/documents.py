# Overview: Flask API routes for quotes and invoices; parses input and returns JSON responses.

# backend/repairdesk/routes/documents.py
"""
Quote and invoice routes.

ERRORS:
- 400 invalid input
- 404 document / repair not found (or owned by another organization)
- 409 business conflict, or configuration fault ("error_type": "configuration")
  when the organization has no resolvable currency
- 503 document number allocation exhausted its retries

A document compiled without any tax configuration is still created, with
"warnings": ["tax_defaulted_to_zero"] in the response.
"""
from flask import Blueprint, request, g, current_app
from ..services import document_service
from ..services.document_service import DocumentError, DocumentNumberError
from ..services.tenant_service import TenantAccessError
from ..time_utils import parse_iso_datetime
from ..validation import ConfigurationError, ConflictError, ValidationError
from ..decorators import require_org

QUOTE_UPDATE_FIELDS = {"status", "notes", "expiration_date", "tax"}
CONTEXT_FIELDS = {"tax", "tax_rate_id", "currency_code"}

documents_bp = Blueprint("documents", __name__, url_prefix="/api")


def _error_response(e: Exception):
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    if isinstance(e, ConflictError):
        return {"error": str(e)}, 409
    if isinstance(e, ConfigurationError):
        current_app.logger.error("Configuration fault for org %s: %s", g.org_id, e)
        return {"error": str(e), "error_type": "configuration"}, 409
    if isinstance(e, TenantAccessError):
        return {"error": str(e)}, 404
    if isinstance(e, DocumentNumberError):
        return {"error": str(e), "details": e.details}, 503
    if isinstance(e, DocumentError):
        return {"error": str(e), "details": e.details}, 400
    raise e


HANDLED_ERRORS = (ValidationError, ConflictError, ConfigurationError, TenantAccessError, DocumentError)


def _document_dict(doc) -> dict:
    data = doc.to_dict()
    data["warnings"] = ["tax_defaulted_to_zero"] if doc.tax_defaulted else []
    return data


def _optional_int(payload: dict, key: str):
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def _optional_datetime(payload: dict, key: str):
    value = payload.get(key)
    if value is None:
        return None
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime")


def _context_kwargs(payload: dict) -> dict:
    return {
        "tax": payload.get("tax"),
        "tax_rate_id": _optional_int(payload, "tax_rate_id"),
        "currency_code": payload.get("currency_code"),
    }


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

@documents_bp.get("/quotes")
@require_org
def list_quotes():
    """Query params: repair_id (optional)."""
    quotes = document_service.list_quotes(org_id=g.org_id, repair_id=request.args.get("repair_id", type=int))
    return {"items": [_document_dict(q) for q in quotes], "count": len(quotes)}


@documents_bp.post("/quotes")
@require_org
def create_quote():
    """Body: repair_id, optional tax / tax_rate_id / currency_code / notes / expiration_date."""
    payload = request.get_json(silent=True) or {}
    try:
        repair_id = _optional_int(payload, "repair_id")
        if repair_id is None:
            raise ValidationError("repair_id is required")
        quote = document_service.create_quote(
            org_id=g.org_id,
            repair_id=repair_id,
            notes=payload.get("notes"),
            expiration_date=_optional_datetime(payload, "expiration_date"),
            **_context_kwargs(payload),
        )
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return _document_dict(quote), 201


@documents_bp.get("/quotes/<int:quote_id>")
@require_org
def get_quote(quote_id: int):
    try:
        quote = document_service.get_quote(org_id=g.org_id, quote_id=quote_id)
    except TenantAccessError:
        return {"error": "Quote not found"}, 404
    data = _document_dict(quote)
    data["items"] = [item.to_dict() for item in document_service.load_document_items(quote)]
    return data


@documents_bp.put("/quotes/<int:quote_id>")
@require_org
def update_quote(quote_id: int):
    """Body: any of status (pending|approved|rejected), notes, expiration_date, tax."""
    payload = request.get_json(silent=True) or {}
    unknown = sorted(set(payload) - QUOTE_UPDATE_FIELDS)
    if unknown:
        return {"error": f"Field not allowed: {unknown[0]}"}, 400

    try:
        patch = dict(payload)
        if "expiration_date" in patch:
            patch["expiration_date"] = _optional_datetime(payload, "expiration_date")
        quote = document_service.update_quote(org_id=g.org_id, quote_id=quote_id, patch=patch)
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return _document_dict(quote)


@documents_bp.post("/quotes/<int:quote_id>/regenerate")
@require_org
def regenerate_quote(quote_id: int):
    """Re-snapshot a pending quote from the ticket's current items."""
    payload = request.get_json(silent=True) or {}
    unknown = sorted(set(payload) - CONTEXT_FIELDS)
    if unknown:
        return {"error": f"Field not allowed: {unknown[0]}"}, 400

    try:
        quote = document_service.regenerate_quote(org_id=g.org_id, quote_id=quote_id, **_context_kwargs(payload))
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return _document_dict(quote)


@documents_bp.delete("/quotes/<int:quote_id>")
@require_org
def delete_quote(quote_id: int):
    try:
        document_service.delete_quote(org_id=g.org_id, quote_id=quote_id)
    except TenantAccessError:
        return {"error": "Quote not found"}, 404
    return {"ok": True}, 200


@documents_bp.get("/quotes/<int:quote_id>/print")
@require_org
def print_quote(quote_id: int):
    try:
        quote = document_service.get_quote(org_id=g.org_id, quote_id=quote_id)
        return document_service.build_printable(org_id=g.org_id, doc=quote)
    except TenantAccessError:
        return {"error": "Quote not found"}, 404


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

@documents_bp.get("/invoices")
@require_org
def list_invoices():
    """Query params: repair_id, status (unpaid|partial|paid), both optional."""
    try:
        invoices = document_service.list_invoices(
            org_id=g.org_id,
            repair_id=request.args.get("repair_id", type=int),
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [_document_dict(i) for i in invoices], "count": len(invoices)}


@documents_bp.post("/invoices")
@require_org
def create_invoice():
    """Body: repair_id, optional quote_id (approved quote to invoice), tax / tax_rate_id / currency_code / notes."""
    payload = request.get_json(silent=True) or {}
    try:
        repair_id = _optional_int(payload, "repair_id")
        if repair_id is None:
            raise ValidationError("repair_id is required")
        invoice = document_service.create_invoice(
            org_id=g.org_id,
            repair_id=repair_id,
            from_quote_id=_optional_int(payload, "quote_id"),
            notes=payload.get("notes"),
            **_context_kwargs(payload),
        )
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return _document_dict(invoice), 201


@documents_bp.get("/invoices/<int:invoice_id>")
@require_org
def get_invoice(invoice_id: int):
    try:
        invoice = document_service.get_invoice(org_id=g.org_id, invoice_id=invoice_id)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
    data = _document_dict(invoice)
    data["items"] = [item.to_dict() for item in document_service.load_document_items(invoice)]
    return data


@documents_bp.post("/invoices/<int:invoice_id>/pay")
@require_org
def pay_invoice(invoice_id: int):
    """Body: amount, payment_method, payment_reference (external gateway id, optional)."""
    payload = request.get_json(silent=True) or {}
    try:
        invoice = document_service.record_payment(
            org_id=g.org_id,
            invoice_id=invoice_id,
            amount=payload.get("amount"),
            payment_method=payload.get("payment_method"),
            payment_reference=payload.get("payment_reference"),
        )
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return _document_dict(invoice)


@documents_bp.delete("/invoices/<int:invoice_id>")
@require_org
def delete_invoice(invoice_id: int):
    try:
        document_service.delete_invoice(org_id=g.org_id, invoice_id=invoice_id)
    except HANDLED_ERRORS as e:
        return _error_response(e)
    return {"ok": True}, 200


@documents_bp.get("/invoices/<int:invoice_id>/print")
@require_org
def print_invoice(invoice_id: int):
    try:
        invoice = document_service.get_invoice(org_id=g.org_id, invoice_id=invoice_id)
        return document_service.build_printable(org_id=g.org_id, doc=invoice)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
