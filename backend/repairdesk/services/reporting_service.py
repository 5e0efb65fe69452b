# Overview: Service-layer operations for reporting; status summaries, workloads and invoice totals.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, RepairTicket, Technician
from ..models.repairs import REPAIR_STATUSES
from ..money import ZERO, format_currency, round_for_currency
from .currency_service import resolve_currency
from .repair_service import is_active, is_urgent
from .tenant_service import scoped_query


def repair_status_summary(*, org_id: int) -> dict:
    rows = (
        db.session.query(RepairTicket.status, func.count(RepairTicket.id))
        .filter(RepairTicket.org_id == org_id, RepairTicket.is_deleted.is_(False))
        .group_by(RepairTicket.status)
        .all()
    )
    counts = {status: 0 for status in REPAIR_STATUSES}
    for status, count in rows:
        counts[status] = count
    total = sum(counts.values())

    return {
        "total": total,
        "statuses": [
            {
                "status": status,
                "count": counts[status],
                "percentage": round(counts[status] * 100 / total, 1) if total else 0.0,
            }
            for status in REPAIR_STATUSES
        ],
        "urgent": len(urgent_repairs(org_id=org_id)),
    }


def urgent_repairs(*, org_id: int) -> list[RepairTicket]:
    tickets = (
        scoped_query(RepairTicket, org_id)
        .filter(RepairTicket.priority_level.in_((1, 2)))
        .order_by(RepairTicket.priority_level, RepairTicket.intake_date)
        .all()
    )
    return [t for t in tickets if is_urgent(t)]


def technician_workloads(*, org_id: int) -> list[dict]:
    """Active repair count and urgent count per technician (terminal tickets excluded)."""
    technicians = scoped_query(Technician, org_id).order_by(Technician.last_name, Technician.first_name).all()
    tickets = (
        scoped_query(RepairTicket, org_id)
        .filter(RepairTicket.technician_id.isnot(None))
        .all()
    )

    workloads = {
        tech.id: {"technician_id": tech.id, "name": tech.full_name, "active": 0, "urgent": 0}
        for tech in technicians
    }
    for ticket in tickets:
        entry = workloads.get(ticket.technician_id)
        if entry is None or not is_active(ticket.status):
            continue
        entry["active"] += 1
        if is_urgent(ticket):
            entry["urgent"] += 1
    return list(workloads.values())


def invoice_totals(*, org_id: int) -> dict:
    """
    Outstanding and paid totals per currency, each formatted with the
    currency convention the invoices were issued under. The organization's
    currency leads the list; an empty registry falls back to the last-resort
    currency with a logged warning instead of failing the dashboard.
    """
    primary = resolve_currency(org_id, strict=False)

    groups: dict[str, dict] = {}
    for invoice in scoped_query(Invoice, org_id).all():
        group = groups.setdefault(invoice.currency_code, {
            "currency": invoice.currency_info(),
            "invoiced": ZERO,
            "paid": ZERO,
            "outstanding": ZERO,
            "count": 0,
        })
        group["invoiced"] += Decimal(invoice.total)
        group["paid"] += Decimal(invoice.amount_paid or 0)
        group["outstanding"] += invoice.balance_due
        group["count"] += 1

    groups.setdefault(primary.code, {
        "currency": primary.currency,
        "invoiced": ZERO,
        "paid": ZERO,
        "outstanding": ZERO,
        "count": 0,
    })

    def _render(code: str, group: dict) -> dict:
        currency = group["currency"]
        return {
            "currency_code": code,
            "count": group["count"],
            **{
                key: str(round_for_currency(group[key], currency.decimal_digits))
                for key in ("invoiced", "paid", "outstanding")
            },
            "display": {
                key: format_currency(group[key], currency)
                for key in ("invoiced", "paid", "outstanding")
            },
        }

    ordered = [primary.code] + sorted(code for code in groups if code != primary.code)
    return {
        "currency": primary.to_dict(),
        "totals": [_render(code, groups[code]) for code in ordered],
    }
