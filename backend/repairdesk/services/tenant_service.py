"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to one organization (g.org_id, set by
@require_org). Tenant-owned rows are looked up by (id, org_id) so a row
belonging to another organization is indistinguishable from a missing one.

USAGE:
    from repairdesk.services.tenant_service import require_owned, scoped_query

    ticket = require_owned(RepairTicket, repair_id, g.org_id, label="Repair")
    customers = scoped_query(Customer, g.org_id).all()
"""

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..models import Organization


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def get_current_org_id() -> int:
    """
    Get current tenant's org_id from Flask g context.

    SECURITY: Raises TenantAccessError if org_id not set.
    This should never happen after @require_org, but is a safety check.
    """
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def validate_org_active(org_id: int) -> Organization:
    """
    Validate that an organization exists and is active.

    Raises:
        TenantAccessError if org doesn't exist or is inactive
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def scoped_query(model, org_id: int = None):
    """
    Base query for a tenant-owned model (must have an org_id column).

    Soft-deleted rows are excluded for models that carry is_deleted.
    """
    if org_id is None:
        org_id = get_current_org_id()

    query = db.session.query(model).filter(model.org_id == org_id)
    if hasattr(model, "is_deleted"):
        query = query.filter(model.is_deleted.is_(False))
    return query


def require_owned(model, row_id: int, org_id: int, *, label: str = None):
    """
    Load a tenant-owned row by id, or raise TenantAccessError.

    A row that exists in another organization raises the same error as a
    missing row (never reveal that it exists elsewhere).
    """
    label = label or model.__name__
    row = db.session.get(model, row_id) if row_id is not None else None

    if row is None or getattr(row, "is_deleted", False):
        raise TenantAccessError(f"{label} not found")

    if row.org_id != org_id:
        _log_cross_tenant_attempt(
            f"{label} {row_id} belongs to org {row.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise TenantAccessError(f"{label} not found")

    return row


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    """Cross-tenant probes are logged; the caller still sees a plain 404."""
    where = f"{request.method} {request.path}" if has_request_context() else "service call"
    current_app.logger.warning("CROSS_TENANT_ACCESS_DENIED org=%s %s: %s", org_id, where, reason)
