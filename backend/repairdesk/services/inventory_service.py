# Overview: Service-layer operations for parts inventory.

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import require_owned, scoped_query


def list_inventory(*, org_id: int, category: Optional[str] = None, low_stock: bool = False) -> list[InventoryItem]:
    query = scoped_query(InventoryItem, org_id).filter(InventoryItem.is_active.is_(True))
    if category:
        query = query.filter(InventoryItem.category == category)
    items = query.order_by(InventoryItem.name).all()
    if low_stock:
        items = [item for item in items if item.is_low_stock]
    return items


def get_inventory_item(*, org_id: int, item_id: int) -> InventoryItem:
    return require_owned(InventoryItem, item_id, org_id, label="Inventory item")


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists in this organization")


def create_inventory_item(*, org_id: int, patch: dict) -> InventoryItem:
    item = InventoryItem(org_id=org_id, **patch)
    db.session.add(item)
    _commit()
    return item


def update_inventory_item(*, org_id: int, item_id: int, patch: dict) -> InventoryItem:
    item = get_inventory_item(org_id=org_id, item_id=item_id)
    for key, value in patch.items():
        setattr(item, key, value)
    _commit()
    return item


def adjust_quantity(*, org_id: int, item_id: int, delta: int) -> InventoryItem:
    """Add (or remove, when negative) stock. Quantity never goes below zero."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _op() -> InventoryItem:
        item = get_inventory_item(org_id=org_id, item_id=item_id)
        item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item.id)).one()
        new_quantity = (item.quantity or 0) + delta
        if new_quantity < 0:
            raise ValidationError(f"Insufficient stock: {item.quantity} on hand")
        item.quantity = new_quantity
        db.session.commit()
        return item

    return run_with_retry(_op)
