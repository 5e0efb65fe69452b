# Overview: Service-layer operations for the Backfill Migrator; default currencies and tax rates per organization.

"""
Backfill Migrator

ensure_defaults(org_id) gives an organization its default currency set and
tax rate set when it has none. It is idempotent: the existence check runs
inside the same transaction as the insert, after taking a per-organization
lock (SELECT ... FOR UPDATE on the organization row, BEGIN IMMEDIATE on
SQLite), so two overlapping passes for one organization cannot both insert.

backfill_all_organizations() runs ensure_defaults for every organization,
logging and skipping any organization that fails. It never raises, so a
broken tenant cannot stop application startup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, reference_cache
from ..models import Currency, Invoice, Organization, Quote, TaxRate
from ..money import decimal_digits_for, normalize_code
from .concurrency import acquire_write_lock, lock_for_update
from .currency_service import DEFAULT_CURRENCIES, ensure_core_currencies
from .tax_service import DEFAULT_TAX_RATES
from .tenant_service import TenantAccessError


CORE_SUFFIX = "CORE"


@dataclass
class BackfillResult:
    org_id: int
    currencies_added: int = 0
    tax_rates_added: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.currencies_added or self.tax_rates_added)

    def to_dict(self) -> dict:
        return {
            "org_id": self.org_id,
            "currencies_added": self.currencies_added,
            "tax_rates_added": self.tax_rates_added,
        }


@dataclass
class BackfillReport:
    results: list[BackfillResult] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)
    core_currencies_added: int = 0
    core_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures and self.core_error is None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "core_currencies_added": self.core_currencies_added,
            "core_error": self.core_error,
            "results": [r.to_dict() for r in self.results],
            "failures": {str(k): v for k, v in self.failures.items()},
        }


def _lock_organization(org_id: int) -> Organization:
    acquire_write_lock()
    org = lock_for_update(db.session.query(Organization).filter_by(id=org_id)).first()
    if org is None:
        raise TenantAccessError("Organization not found")
    return org


def ensure_defaults(org_id: int) -> BackfillResult:
    """
    Insert the default currency set and tax rate set for an organization
    that has no currency rows / no tax rate rows. Existing rows are never
    modified, and exactly one inserted row per set is the default.
    """
    result = BackfillResult(org_id=org_id)
    try:
        _lock_organization(org_id)

        has_currency = (
            db.session.query(Currency.id).filter(Currency.organization_id == org_id).first() is not None
        )
        if not has_currency:
            for code, name, symbol, digits, is_default in DEFAULT_CURRENCIES:
                db.session.add(Currency(
                    organization_id=org_id,
                    code=code,
                    name=name,
                    symbol=symbol,
                    decimal_digits=digits,
                    is_default=is_default,
                ))
                result.currencies_added += 1

        has_tax_rate = (
            db.session.query(TaxRate.id).filter(TaxRate.organization_id == org_id).first() is not None
        )
        if not has_tax_rate:
            for country, region, name, rate, is_default in DEFAULT_TAX_RATES:
                db.session.add(TaxRate(
                    organization_id=org_id,
                    country_code=country,
                    region_code=region,
                    name=name,
                    rate=Decimal(rate),
                    is_default=is_default,
                ))
                result.tax_rates_added += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if result.changed:
        reference_cache.invalidate(org_id)
        current_app.logger.info(
            "Backfilled org %s: %d currencies, %d tax rates",
            org_id, result.currencies_added, result.tax_rates_added,
        )
    return result


def backfill_all_organizations(*, org_id: Optional[int] = None) -> BackfillReport:
    """
    Run ensure_defaults for every organization (or just org_id).

    Per-organization failures are logged and recorded in the report; the
    remaining organizations are still processed.
    """
    report = BackfillReport()

    try:
        report.core_currencies_added = ensure_core_currencies()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Core currency seeding failed: %s", exc)
        report.core_error = str(exc)

    query = db.session.query(Organization.id).order_by(Organization.id)
    if org_id is not None:
        query = query.filter(Organization.id == org_id)
    org_ids = [row.id for row in query.all()]

    for current_org_id in org_ids:
        try:
            report.results.append(ensure_defaults(current_org_id))
        except Exception as exc:  # isolated per organization
            current_app.logger.error("Backfill failed for org %s: %s", current_org_id, exc)
            report.failures[current_org_id] = str(exc)

    reference_cache.invalidate()
    current_app.logger.info(
        "Backfill finished: %d organizations processed, %d failed",
        len(org_ids), len(report.failures),
    )
    return report


def _split_namespaced_code(code: str) -> tuple[str, Optional[str]]:
    """ "USD_5" -> ("USD", "5"), "USD_CORE" -> ("USD", "CORE"), "USD" -> ("USD", None)"""
    base, sep, suffix = normalize_code(code).rpartition("_")
    if not sep:
        return normalize_code(code), None
    return base, suffix


def normalize_legacy_currency_codes() -> dict:
    """
    One-time rewrite of namespaced currency codes (USD_5, USD_CORE) into the
    composite (organization_id, code) model.

    A row whose base code already exists in its scope is left alone and
    reported as skipped. Documents that referenced the namespaced code are
    updated to the plain code. Returns counts for the CLI.
    """
    renamed = 0
    skipped = []
    documents_updated = 0

    rows = db.session.query(Currency).filter(Currency.code.like("%\\_%", escape="\\")).all()
    for row in rows:
        base, suffix = _split_namespaced_code(row.code)
        if suffix is None:
            continue

        if suffix == CORE_SUFFIX:
            target_org = None
        elif suffix.isdigit():
            target_org = int(suffix)
        else:
            skipped.append(row.code)
            continue

        scope = Currency.organization_id.is_(None) if target_org is None else Currency.organization_id == target_org
        clash = (
            db.session.query(Currency.id)
            .filter(scope, Currency.code == base, Currency.id != row.id)
            .first()
        )
        if clash is not None:
            skipped.append(row.code)
            continue

        old_code = row.code
        row.code = base
        row.organization_id = target_org
        if row.decimal_digits is None:
            row.decimal_digits = decimal_digits_for(base)

        for model in (Quote, Invoice):
            documents_updated += (
                db.session.query(model)
                .filter(model.currency_code == old_code)
                .update({model.currency_code: base}, synchronize_session=False)
            )
        renamed += 1

    db.session.commit()
    reference_cache.invalidate()
    if renamed or skipped:
        current_app.logger.info(
            "Normalized %d namespaced currency codes (%d skipped, %d documents updated)",
            renamed, len(skipped), documents_updated,
        )
    return {"renamed": renamed, "skipped": skipped, "documents_updated": documents_updated}
