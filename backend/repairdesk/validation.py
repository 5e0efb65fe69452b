from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from repairdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from repairdesk.money import ALLOWED_DECIMAL_DIGITS, to_decimal


# Maximum unit price / adjustment: 9,999,999.99 major units
MAX_AMOUNT = Decimal("9999999.99")
MAX_QUANTITY = 100_000

ITEM_TYPES = ("part", "service")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate currency code)."""


class ConfigurationError(RuntimeError):
    """
    Tenant reference data is missing (no currency / tax rate resolvable).

    Never masked with a guessed default: the Backfill Migrator is expected to
    have provisioned the organization, so this signals an operator problem.
    """


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Money and percentages arrive as JSON numbers or strings
    if isinstance(coltype, Numeric):
        try:
            return to_decimal(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_amount(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        amount = patch[key]
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT:,}")


def enforce_rules_repair(patch: dict) -> None:
    if "priority_level" in patch and patch["priority_level"] is not None:
        if not 1 <= patch["priority_level"] <= 5:
            raise ValidationError("priority_level must be between 1 and 5")


def enforce_rules_repair_item(patch: dict) -> None:
    """Line items: quantity >= 1, unit_price >= 0, item_type part|service."""
    if "quantity" in patch:
        qty = patch["quantity"]
        if qty is None or qty < 1:
            raise ValidationError("quantity must be >= 1")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    if "unit_price" in patch and patch["unit_price"] is None:
        raise ValidationError("unit_price cannot be null")
    _check_amount(patch, "unit_price")
    if "item_type" in patch and patch["item_type"] not in ITEM_TYPES:
        raise ValidationError(f"item_type must be one of {', '.join(ITEM_TYPES)}")


def enforce_rules_inventory_item(patch: dict) -> None:
    _check_amount(patch, "price")
    _check_amount(patch, "cost")
    for key in ("quantity", "min_level"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def enforce_rules_tax_rate(patch: dict) -> None:
    # rate is a percentage: 7.25 means 7.25%
    if "rate" in patch:
        rate = patch["rate"]
        if rate is None or rate < 0 or rate > 100:
            raise ValidationError("rate must be a percentage between 0 and 100")
    if "country_code" in patch:
        code = (patch["country_code"] or "").upper()
        if len(code) != 2 or not code.isalpha():
            raise ValidationError("country_code must be a two-letter country code")
        patch["country_code"] = code
    if patch.get("region_code"):
        patch["region_code"] = patch["region_code"].upper()


def enforce_rules_currency(patch: dict) -> None:
    if "code" in patch:
        code = (patch["code"] or "").strip().upper()
        if not (3 <= len(code) <= 8) or not code.replace("_", "").isalnum():
            raise ValidationError("code must be 3-8 letters or digits")
        patch["code"] = code
    if "decimal_digits" in patch and patch["decimal_digits"] is not None:
        if patch["decimal_digits"] not in ALLOWED_DECIMAL_DIGITS:
            raise ValidationError("decimal_digits must be 0 or 2")
