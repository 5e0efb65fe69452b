# Overview: Service-layer operations for the currency registry; CRUD and effective-currency resolution.

"""
Currency Registry

Two scopes share one table: core rows (organization_id NULL) are available
to every organization; organization rows override or extend them.

RESOLUTION ORDER (resolve_currency):
1. explicit code, organization row first, then core row
2. the organization's default
3. the core default
4. the first available row (organization rows first) when rows exist but
   none is flagged default
5. nothing at any scope: CurrencyConfigurationError, or LAST_RESORT_CURRENCY
   when the caller passes strict=False

An unknown explicit code falls through to step 2; the returned `source`
tells the caller which rule matched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db, reference_cache
from ..models import Currency
from ..money import (
    CurrencyInfo,
    LAST_RESORT_CURRENCY,
    decimal_digits_for,
    normalize_code,
    resolve_currency_symbol,
)
from ..validation import ConfigurationError, ConflictError, ValidationError
from .reference_cache import CURRENCIES
from .tenant_service import TenantAccessError


# (code, name, symbol, decimal_digits, is_default)
DEFAULT_CURRENCIES = (
    ("USD", "US Dollar", "$", 2, True),
    ("EUR", "Euro", "€", 2, False),
    ("GBP", "British Pound", "£", 2, False),
    ("CAD", "Canadian Dollar", "C$", 2, False),
    ("AUD", "Australian Dollar", "A$", 2, False),
    ("JPY", "Japanese Yen", "¥", 0, False),
)

SOURCE_EXPLICIT_ORG = "explicit_organization"
SOURCE_EXPLICIT_CORE = "explicit_core"
SOURCE_ORG_DEFAULT = "organization_default"
SOURCE_CORE_DEFAULT = "core_default"
SOURCE_FIRST_AVAILABLE = "first_available"
SOURCE_LAST_RESORT = "last_resort"


class CurrencyConfigurationError(ConfigurationError):
    """No currency exists at any scope for the organization."""
    pass


@dataclass(frozen=True)
class ResolvedCurrency:
    currency: CurrencyInfo
    source: str

    @property
    def code(self) -> str:
        return self.currency.code

    @property
    def symbol(self) -> str:
        return self.currency.symbol

    @property
    def decimal_digits(self) -> int:
        return self.currency.decimal_digits

    def to_dict(self) -> dict:
        data = self.currency.to_dict()
        data["source"] = self.source
        return data


def _load_currencies(org_id: Optional[int]) -> list[CurrencyInfo]:
    scope_filter = Currency.organization_id.is_(None)
    if org_id is not None:
        scope_filter = or_(Currency.organization_id == org_id, scope_filter)

    rows = (
        db.session.query(Currency)
        .filter(scope_filter)
        .order_by(Currency.organization_id.is_(None), Currency.code)
        .all()
    )
    return [row.to_info() for row in rows]


def list_currencies(org_id: Optional[int]) -> tuple[CurrencyInfo, ...]:
    """Organization rows (if any) followed by core rows, each ordered by code."""
    return reference_cache.get(org_id, CURRENCIES, lambda: _load_currencies(org_id))


def resolve_currency(org_id: Optional[int], code: Optional[str] = None, *, strict: bool = True) -> ResolvedCurrency:
    currencies = list_currencies(org_id)
    org_rows = [c for c in currencies if c.organization_id is not None]
    core_rows = [c for c in currencies if c.organization_id is None]

    wanted = normalize_code(code or "")
    if wanted:
        for rows, source in ((org_rows, SOURCE_EXPLICIT_ORG), (core_rows, SOURCE_EXPLICIT_CORE)):
            for currency in rows:
                if currency.code == wanted:
                    return ResolvedCurrency(currency, source)

    for rows, source in ((org_rows, SOURCE_ORG_DEFAULT), (core_rows, SOURCE_CORE_DEFAULT)):
        for currency in rows:
            if currency.is_default:
                return ResolvedCurrency(currency, source)

    if currencies:
        return ResolvedCurrency(currencies[0], SOURCE_FIRST_AVAILABLE)

    if strict:
        raise CurrencyConfigurationError(
            f"No currency configured for organization {org_id}; run the currency backfill"
        )
    current_app.logger.warning(
        "Currency registry is empty for org %s; using last-resort currency %s",
        org_id,
        LAST_RESORT_CURRENCY.code,
    )
    return ResolvedCurrency(LAST_RESORT_CURRENCY, SOURCE_LAST_RESORT)


def currency_symbol_for(org_id: Optional[int], code: Optional[str]) -> str:
    return resolve_currency_symbol(code, list_currencies(org_id))


def _clear_default(org_id: Optional[int]) -> None:
    if org_id is None:
        scope = Currency.organization_id.is_(None)
    else:
        scope = Currency.organization_id == org_id
    (
        db.session.query(Currency)
        .filter(scope, Currency.is_default.is_(True))
        .update({Currency.is_default: False}, synchronize_session="fetch")
    )


def _find(org_id: Optional[int], code: str) -> Optional[Currency]:
    if org_id is None:
        scope = Currency.organization_id.is_(None)
    else:
        scope = Currency.organization_id == org_id
    return db.session.query(Currency).filter(scope, Currency.code == code).first()


def _commit(org_id: Optional[int]) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Currency code or default already exists in this scope")
    reference_cache.invalidate(org_id)


def _check_digits(code: str, digits: int) -> None:
    expected = decimal_digits_for(code)
    if digits != expected:
        raise ValidationError(f"{code} uses {expected} decimal digits")


def create_currency(*, org_id: Optional[int], patch: dict) -> Currency:
    """
    Add a currency to an organization (or to the core scope when org_id is None).

    Setting is_default clears the previous default of the same scope in the
    same transaction.
    """
    code = normalize_code(patch["code"])
    if _find(org_id, code) is not None:
        raise ConflictError(f"Currency {code} already exists")

    digits = patch.get("decimal_digits")
    if digits is not None:
        _check_digits(code, digits)
    is_default = bool(patch.get("is_default", False))

    if is_default:
        _clear_default(org_id)

    currency = Currency(
        organization_id=org_id,
        code=code,
        name=patch["name"],
        symbol=patch["symbol"],
        decimal_digits=decimal_digits_for(code) if digits is None else digits,
        is_default=is_default,
    )
    db.session.add(currency)
    _commit(org_id)
    return currency


def update_currency(*, org_id: int, code: str, patch: dict) -> Currency:
    """Update an organization's currency. Core rows are not editable by tenants."""
    currency = _find(org_id, normalize_code(code))
    if currency is None:
        raise TenantAccessError("Currency not found")

    if patch.get("decimal_digits") is not None:
        _check_digits(currency.code, patch["decimal_digits"])

    if patch.get("is_default") is True and not currency.is_default:
        _clear_default(org_id)

    for key in ("name", "symbol", "decimal_digits", "is_default"):
        if key in patch and patch[key] is not None:
            setattr(currency, key, patch[key])

    _commit(org_id)
    return currency


def ensure_core_currencies() -> int:
    """
    Seed the core scope with DEFAULT_CURRENCIES. Idempotent: existing codes are
    left untouched, and a default is only set when the core scope has none.

    Returns the number of rows inserted.
    """
    existing = {
        c.code: c
        for c in db.session.query(Currency).filter(Currency.organization_id.is_(None)).all()
    }
    has_default = any(c.is_default for c in existing.values())

    inserted = 0
    for code, name, symbol, digits, is_default in DEFAULT_CURRENCIES:
        if code in existing:
            continue
        db.session.add(Currency(
            organization_id=None,
            code=code,
            name=name,
            symbol=symbol,
            decimal_digits=digits,
            is_default=is_default and not has_default,
        ))
        inserted += 1

    if inserted:
        db.session.commit()
        reference_cache.invalidate()
        current_app.logger.info("Seeded %d core currencies", inserted)
    return inserted
