from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


class Organization(db.Model):
    """
    A repair shop. Every tenant-owned row carries its id as org_id, and the
    organization-scoped half of the currency / tax rate registries hangs off
    it as organization_id.

    The contact fields are printed as the issuing party on quotes and invoices.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Organization id={self.id} code={self.code!r}>"

    def contact_dict(self) -> dict:
        return {"name": self.name, "email": self.email, "phone": self.phone, "address": self.address}

    def to_dict(self) -> dict:
        data = self.contact_dict()
        data.update({
            "id": self.id,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        })
        return data
