# backend/repairdesk/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the reference data registries are
populated (an empty currency registry means the backfill never ran).
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Currency, Organization, TaxRate

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and reference data presence.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        currency_count = db.session.query(Currency).count()
        tax_rate_count = db.session.query(TaxRate).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if currency_count else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "organizations": org_count,
                "currencies": currency_count,
                "tax_rates": tax_rate_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 503 if database["status"] == "unhealthy" else 200
    return {"status": database["status"], "checks": {"database": database}}, status_code
