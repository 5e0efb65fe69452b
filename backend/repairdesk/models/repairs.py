from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from repairdesk.time_utils import to_utc_z, utcnow


REPAIR_STATUSES = (
    "intake",
    "diagnosing",
    "awaiting_approval",
    "parts_ordered",
    "in_repair",
    "ready_for_pickup",
    "completed",
    "on_hold",
    "cancelled",
)
TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
URGENT_PRIORITIES = frozenset({1, 2})
DEFAULT_PRIORITY = 3


class RepairTicket(db.Model):
    """
    Work order from intake through completion.

    LIFECYCLE:
    intake -> diagnosing -> awaiting_approval -> parts_ordered -> in_repair
    -> ready_for_pickup -> completed, with on_hold and cancelled reachable
    from any non-terminal state. Any known status may be written; only
    completed and cancelled are terminal.

    total_cost is derived. It is set from the invoice total when an invoice
    is issued and is not authoritative before that.
    """
    __tablename__ = "repairs"
    __table_args__ = (
        db.Index("ix_repairs_org_status", "org_id", "status"),
        db.Index("ix_repairs_org_customer", "org_id", "customer_id"),
        db.Index("ix_repairs_org_technician", "org_id", "technician_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Human-readable ticket number (e.g., "RT-24070042")
    ticket_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    device_id = db.Column(db.Integer, db.ForeignKey("devices.id"), nullable=True)
    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=True)

    status = db.Column(db.String(32), nullable=False, default="intake")
    issue = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    diagnostic_notes = db.Column(db.Text, nullable=True)

    intake_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    estimated_completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_completion_date = db.Column(db.DateTime(timezone=True), nullable=True)

    priority_level = db.Column(db.Integer, nullable=False, default=DEFAULT_PRIORITY)  # 1-5, 1 = highest
    is_under_warranty = db.Column(db.Boolean, nullable=False, default=False)
    customer_approval = db.Column(db.Boolean, nullable=True)
    total_cost = db.Column(db.Numeric(14, 4), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("repairs", lazy=True))
    device = db.relationship("Device")
    technician = db.relationship("Technician", backref=db.backref("repairs", lazy=True))
    items = db.relationship(
        "RepairItem",
        back_populates="repair",
        order_by="RepairItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def live_items(self) -> list["RepairItem"]:
        return [item for item in self.items if not item.is_deleted]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "ticket_number": self.ticket_number,
            "customer_id": self.customer_id,
            "device_id": self.device_id,
            "technician_id": self.technician_id,
            "status": self.status,
            "issue": self.issue,
            "notes": self.notes,
            "diagnostic_notes": self.diagnostic_notes,
            "intake_date": to_utc_z(self.intake_date),
            "estimated_completion_date": to_utc_z(self.estimated_completion_date),
            "actual_completion_date": to_utc_z(self.actual_completion_date),
            "priority_level": self.priority_level,
            "is_under_warranty": self.is_under_warranty,
            "customer_approval": self.customer_approval,
            "total_cost": str(self.total_cost) if self.total_cost is not None else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class RepairItem(db.Model):
    """
    Billable part or service on a ticket. The live item set is the source of
    truth for new documents; issued documents carry their own snapshot.
    """
    __tablename__ = "repair_items"
    __table_args__ = (
        db.Index("ix_repair_items_repair_deleted", "repair_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=False)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=True)

    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    item_type = db.Column(db.String(16), nullable=False)  # part, service
    is_completed = db.Column(db.Boolean, nullable=False, default=False)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    repair = db.relationship("RepairTicket", back_populates="items")
    inventory_item = db.relationship("InventoryItem")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "repair_id": self.repair_id,
            "inventory_item_id": self.inventory_item_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "item_type": self.item_type,
            "is_completed": self.is_completed,
            "created_at": to_utc_z(self.created_at),
        }
