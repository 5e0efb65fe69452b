# Overview: Flask API routes for dashboard reports; returns JSON responses.

# backend/repairdesk/routes/reports.py
from flask import Blueprint, g, current_app
from ..services import reporting_service
from ..services.repair_service import is_urgent
from ..decorators import require_org

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@require_org
def summary():
    """Status counts and percentages plus invoice totals in the organization's currency."""
    try:
        data = reporting_service.repair_status_summary(org_id=g.org_id)
        data["invoices"] = reporting_service.invoice_totals(org_id=g.org_id)
    except Exception:
        current_app.logger.exception("Summary report failed for org %s", g.org_id)
        return {"error": "Failed to build summary"}, 500
    return data


@reports_bp.get("/urgent")
@require_org
def urgent():
    tickets = reporting_service.urgent_repairs(org_id=g.org_id)
    items = []
    for ticket in tickets:
        data = ticket.to_dict()
        data["is_urgent"] = is_urgent(ticket)
        items.append(data)
    return {"items": items, "count": len(items)}


@reports_bp.get("/technicians")
@require_org
def technicians():
    workloads = reporting_service.technician_workloads(org_id=g.org_id)
    return {"items": workloads, "count": len(workloads)}
