# Overview: Service-layer operations for the tax rate registry.

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db, reference_cache
from ..models import TaxRate
from ..money import TaxRateInfo
from ..validation import ConfigurationError, ConflictError
from .reference_cache import TAX_RATES
from .tenant_service import TenantAccessError


# (country_code, region_code, name, rate %, is_default)
DEFAULT_TAX_RATES = (
    ("US", None, "No Tax", "0", False),
    ("US", "CA", "California Sales Tax", "7.25", True),
    ("US", "NY", "New York Sales Tax", "8.875", False),
    ("US", "TX", "Texas Sales Tax", "6.25", False),
    ("CA", None, "Canada GST", "5", False),
    ("GB", None, "UK VAT", "20", False),
    ("AU", None, "Australia GST", "10", False),
)


class TaxConfigurationError(ConfigurationError):
    """The organization has no default tax rate."""
    pass


def _load_tax_rates(org_id: int) -> list[TaxRateInfo]:
    rows = (
        db.session.query(TaxRate)
        .filter(TaxRate.organization_id == org_id)
        .order_by(TaxRate.country_code, TaxRate.region_code, TaxRate.id)
        .all()
    )
    return [row.to_info() for row in rows]


def list_tax_rates(org_id: int) -> tuple[TaxRateInfo, ...]:
    return reference_cache.get(org_id, TAX_RATES, lambda: _load_tax_rates(org_id))


def resolve_default_tax_rate(org_id: int) -> TaxRateInfo:
    """
    The organization's default rate.

    A missing default is a provisioning fault (the Backfill Migrator should
    have prevented it) and raises instead of guessing a rate.
    """
    for rate in list_tax_rates(org_id):
        if rate.is_default:
            return rate
    raise TaxConfigurationError(f"No default tax rate configured for organization {org_id}")


def get_tax_rate(*, org_id: int, tax_rate_id: int) -> TaxRateInfo:
    for rate in list_tax_rates(org_id):
        if rate.id == tax_rate_id:
            return rate
    raise TenantAccessError("Tax rate not found")


def _clear_default(org_id: int) -> None:
    (
        db.session.query(TaxRate)
        .filter(TaxRate.organization_id == org_id, TaxRate.is_default.is_(True))
        .update({TaxRate.is_default: False}, synchronize_session="fetch")
    )


def _commit(org_id: int) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Organization already has a default tax rate")
    reference_cache.invalidate(org_id)


def create_tax_rate(*, org_id: int, patch: dict) -> TaxRate:
    is_default = bool(patch.get("is_default", False))
    if is_default:
        _clear_default(org_id)

    rate = TaxRate(
        organization_id=org_id,
        country_code=patch["country_code"],
        region_code=patch.get("region_code") or None,
        name=patch["name"],
        rate=patch["rate"],
        is_default=is_default,
    )
    db.session.add(rate)
    _commit(org_id)
    return rate


def update_tax_rate(*, org_id: int, tax_rate_id: int, patch: dict) -> Optional[TaxRate]:
    rate = db.session.query(TaxRate).filter_by(id=tax_rate_id, organization_id=org_id).first()
    if rate is None:
        raise TenantAccessError("Tax rate not found")

    if patch.get("is_default") is False and rate.is_default:
        raise ConflictError("Set another tax rate as default first")
    if patch.get("is_default") is True and not rate.is_default:
        _clear_default(org_id)

    for key, value in patch.items():
        if key == "is_default" and value is None:
            continue
        setattr(rate, key, value)

    _commit(org_id)
    return rate
