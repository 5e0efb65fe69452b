from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Parts stock. A repair line item may reference an inventory item, in which
    case its price and name become the line's defaults.

    Prices are major-unit decimals in the organization's default currency.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_inventory_items_org_sku"),
        db.Index("ix_inventory_items_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    price = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    cost = db.Column(db.Numeric(14, 4), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_level = db.Column(db.Integer, nullable=False, default=1)
    location = db.Column(db.String(128), nullable=True)
    supplier = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.min_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "sku": self.sku,
            "price": str(self.price) if self.price is not None else None,
            "cost": str(self.cost) if self.cost is not None else None,
            "quantity": self.quantity,
            "min_level": self.min_level,
            "location": self.location,
            "supplier": self.supplier,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
