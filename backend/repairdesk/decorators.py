# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import tenant_service
from .services.tenant_service import TenantAccessError


ORG_HEADER = "X-Organization-Id"


def require_org(f):
    """
    Establish tenant context from the X-Organization-Id header.

    Authentication happens upstream; this decorator only binds the request
    to one active organization.

    MULTI-TENANT: Sets g.org_id. Returns 401 if the header is missing, not an
    integer, or names an unknown / inactive organization.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ORG_HEADER) or "").strip()

        if not raw:
            return jsonify({"error": "Organization context required"}), 401

        try:
            org_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid organization context"}), 401

        try:
            tenant_service.validate_org_active(org_id)
        except TenantAccessError:
            return jsonify({"error": "Invalid organization context"}), 401

        g.org_id = org_id
        return f(*args, **kwargs)

    return decorated_function
