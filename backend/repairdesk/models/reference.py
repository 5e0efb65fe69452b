from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from repairdesk.money import CurrencyInfo, TaxRateInfo
from repairdesk.time_utils import to_utc_z


def _where(clause: str) -> dict:
    # Partial index predicate for both supported dialects
    return {"sqlite_where": db.text(clause), "postgresql_where": db.text(clause)}


class Currency(db.Model):
    """
    Currency definition, scoped globally (organization_id NULL, "core") or to
    one organization.

    UNIQUENESS:
    - (organization_id, code) for organization rows
    - code alone among core rows (partial index, NULLs never collide in a
      composite unique constraint)
    - at most one is_default row per scope (partial indexes)

    Rows are never deleted; a currency stops being the default by clearing
    is_default.
    """
    __tablename__ = "currencies"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "code", name="uq_currencies_org_code"),
        db.Index("uq_currencies_core_code", "code", unique=True, **_where("organization_id IS NULL")),
        db.Index(
            "uq_currencies_org_default",
            "organization_id",
            unique=True,
            **_where("is_default AND organization_id IS NOT NULL"),
        ),
        db.Index(
            "uq_currencies_core_default",
            "is_default",
            unique=True,
            **_where("is_default AND organization_id IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    code = db.Column(db.String(8), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    symbol = db.Column(db.String(8), nullable=False)
    decimal_digits = db.Column(db.Integer, nullable=False, default=2)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_core(self) -> bool:
        return self.organization_id is None

    def to_info(self) -> CurrencyInfo:
        return CurrencyInfo(
            code=self.code,
            name=self.name,
            symbol=self.symbol,
            decimal_digits=self.decimal_digits,
            is_default=bool(self.is_default),
            organization_id=self.organization_id,
        )

    def to_dict(self) -> dict:
        data = self.to_info().to_dict()
        data["id"] = self.id
        data["created_at"] = to_utc_z(self.created_at)
        return data


class TaxRate(db.Model):
    """
    Jurisdiction tax rate for an organization.

    rate is a percentage: 7.25 means 7.25%, not 0.0725.
    At most one default per organization (partial unique index); the Backfill
    Migrator makes sure there is exactly one.
    """
    __tablename__ = "tax_rates"
    __table_args__ = (
        db.Index("ix_tax_rates_org_jurisdiction", "organization_id", "country_code", "region_code"),
        db.Index("uq_tax_rates_org_default", "organization_id", unique=True, **_where("is_default")),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    country_code = db.Column(db.String(2), nullable=False)
    region_code = db.Column(db.String(8), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    rate = db.Column(db.Numeric(7, 4), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_info(self) -> TaxRateInfo:
        return TaxRateInfo(
            id=self.id,
            country_code=self.country_code,
            region_code=self.region_code,
            name=self.name,
            rate=Decimal(self.rate),
            is_default=bool(self.is_default),
            organization_id=self.organization_id,
        )

    def to_dict(self) -> dict:
        data = self.to_info().to_dict()
        data["created_at"] = to_utc_z(self.created_at)
        return data
