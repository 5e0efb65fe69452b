# Overview: Service-layer operations for customers, their devices and technicians.

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Device, Technician
from .tenant_service import require_owned, scoped_query


def list_customers(*, org_id: int, search: Optional[str] = None) -> list[Customer]:
    query = scoped_query(Customer, org_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
            Customer.email.ilike(like),
            Customer.phone.ilike(like),
        ))
    return query.order_by(Customer.last_name, Customer.first_name).all()


def get_customer(*, org_id: int, customer_id: int) -> Customer:
    return require_owned(Customer, customer_id, org_id, label="Customer")


def create_customer(*, org_id: int, patch: dict) -> Customer:
    customer = Customer(org_id=org_id, **patch)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, org_id: int, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(org_id=org_id, customer_id=customer_id)
    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def list_devices(*, org_id: int, customer_id: int) -> list[Device]:
    customer = get_customer(org_id=org_id, customer_id=customer_id)
    return (
        scoped_query(Device, org_id)
        .filter(Device.customer_id == customer.id)
        .order_by(Device.id)
        .all()
    )


def create_device(*, org_id: int, customer_id: int, patch: dict) -> Device:
    customer = get_customer(org_id=org_id, customer_id=customer_id)
    device = Device(org_id=org_id, customer_id=customer.id, **patch)
    db.session.add(device)
    db.session.commit()
    return device


def list_technicians(*, org_id: int, active_only: bool = False) -> list[Technician]:
    query = scoped_query(Technician, org_id)
    if active_only:
        query = query.filter(Technician.is_active.is_(True))
    return query.order_by(Technician.last_name, Technician.first_name).all()


def create_technician(*, org_id: int, patch: dict) -> Technician:
    technician = Technician(org_id=org_id, **patch)
    db.session.add(technician)
    db.session.commit()
    return technician
