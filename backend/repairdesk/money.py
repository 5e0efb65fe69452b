# Overview: Decimal arithmetic and currency display helpers shared by quotes, invoices and reports.

"""
Money handling rules

- Monetary values are major-unit decimals (25.50 means twenty-five fifty, not cents).
- Arithmetic happens on decimal.Decimal. Floats are converted through str() so
  10.1 stays 10.1 rather than its binary approximation.
- Stored amounts keep INTERNAL_QUANTUM precision. Rounding to a currency's own
  digit count happens only when an amount is displayed.
- A currency has either 0 or 2 decimal digits: 0 for ISO codes without a minor
  unit, 2 for everything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional


INTERNAL_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")

ZERO_DECIMAL_CODES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})
ALLOWED_DECIMAL_DIGITS = (0, 2)

SCOPE_CORE = "core"
SCOPE_ORGANIZATION = "organization"


@dataclass(frozen=True)
class CurrencyInfo:
    """Immutable view of a currency row, safe to cache and pass outside a session."""
    code: str
    name: str
    symbol: str
    decimal_digits: int
    is_default: bool = False
    organization_id: Optional[int] = None

    @property
    def scope(self) -> str:
        return SCOPE_CORE if self.organization_id is None else SCOPE_ORGANIZATION

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "symbol": self.symbol,
            "decimal_digits": self.decimal_digits,
            "is_default": self.is_default,
            "scope": self.scope,
            "organization_id": self.organization_id,
        }


@dataclass(frozen=True)
class TaxRateInfo:
    """Immutable view of a tax rate row. `rate` is a percentage: 7.25 means 7.25%."""
    id: Optional[int]
    country_code: str
    region_code: Optional[str]
    name: str
    rate: Decimal
    is_default: bool = False
    organization_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "country_code": self.country_code,
            "region_code": self.region_code,
            "name": self.name,
            "rate": str(self.rate),
            "is_default": self.is_default,
            "organization_id": self.organization_id,
        }


# Used only when no currency row exists at any scope, and only by callers that
# explicitly opt out of strict resolution.
LAST_RESORT_CURRENCY = CurrencyInfo(code="USD", name="US Dollar", symbol="$", decimal_digits=2)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def decimal_digits_for(code: str) -> int:
    return 0 if normalize_code(code) in ZERO_DECIMAL_CODES else 2


def to_decimal(value: Any) -> Decimal:
    """
    Convert user or database input into a finite Decimal.

    Raises ValueError for booleans, blanks, NaN/Infinity and unparseable text.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("amount must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError("amount must be a number")
        try:
            result = Decimal(s)
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    else:
        raise ValueError("amount must be a number")
    if not result.is_finite():
        raise ValueError("amount must be finite")
    return result


def quantize_internal(amount: Decimal) -> Decimal:
    return amount.quantize(INTERNAL_QUANTUM, rounding=ROUND_HALF_UP)


def round_for_currency(amount: Decimal, decimal_digits: int) -> Decimal:
    quantum = Decimal(1).scaleb(-decimal_digits)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(amount: Any, decimal_digits: int) -> str:
    """Group thousands and render exactly `decimal_digits` fraction digits."""
    rounded = round_for_currency(to_decimal(amount), decimal_digits)
    if rounded == 0:
        rounded = abs(rounded)
    return f"{rounded:,.{decimal_digits}f}"


def format_currency(amount: Any, currency: Optional[CurrencyInfo]) -> str:
    """
    Render an amount with its currency's symbol and precision, e.g. "$1,234.50", "¥26".

    Missing or unparseable amounts render as "-". A missing currency is a
    caller bug: pass a resolved currency instead of relying on a default symbol.
    """
    if currency is None:
        raise ValueError("currency is required for formatting")
    if amount is None:
        return "-"
    try:
        value = to_decimal(amount)
    except ValueError:
        return "-"
    text = format_amount(value, currency.decimal_digits)
    if text.startswith("-"):
        return f"-{currency.symbol}{text[1:]}"
    return f"{currency.symbol}{text}"


def resolve_currency_symbol(code: Optional[str], currencies: Iterable[CurrencyInfo]) -> str:
    """
    Symbol for `code` from the given registry rows.

    Organization rows win over core rows with the same code. An unknown code
    renders as the code itself, which is unambiguous on any printout.
    """
    wanted = normalize_code(code or "")
    if not wanted:
        return ""
    core_symbol = None
    for currency in currencies:
        if normalize_code(currency.code) != wanted:
            continue
        if currency.organization_id is not None:
            return currency.symbol
        if core_symbol is None:
            core_symbol = currency.symbol
    return core_symbol if core_symbol is not None else wanted
