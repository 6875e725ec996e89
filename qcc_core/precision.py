"""
Precision constants and helpers for QCC amounts.

QCC amounts carry 18 decimal places on the wire:

    1 QCC = 10**18 base units

User-entered amounts are decimal strings.  They are scaled with exact
``Decimal`` arithmetic (never ``float``) and rendered in plain notation,
because the scaled string is part of the signed payload.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

from qcc_core.errors import InvalidAmountError

# Number of decimal places for QCC amounts.
QCC_DECIMALS: int = 18

# Base units per whole QCC.
UNITS_PER_QCC: int = 10 ** QCC_DECIMALS

# Working precision for scaling; wide enough for any realistic supply.
_PRECISION: int = 60


def _plain(value: Decimal) -> str:
    """Render *value* without exponent or trailing zeros.

    >>> _plain(Decimal("1E+18"))
    '1000000000000000000'
    >>> _plain(Decimal("2.50"))
    '2.5'
    """
    value = value.normalize()
    if value == 0:
        return "0"
    return format(value, "f")


def parse_amount(amount: str | int | Decimal) -> Decimal:
    """Parse a user-supplied amount into a finite ``Decimal``."""
    if isinstance(amount, bool) or isinstance(amount, float):
        raise InvalidAmountError("Amounts must be given as decimal strings")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError() from exc
    if not value.is_finite():
        raise InvalidAmountError()
    return value


def to_base_units(amount: str | int | Decimal) -> str:
    """Scale a QCC amount by 10**18 and render it in full decimal notation.

    >>> to_base_units("1")
    '1000000000000000000'
    >>> to_base_units("0.5")
    '500000000000000000'
    """
    value = parse_amount(amount)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _plain(value * UNITS_PER_QCC)


def from_base_units(units: str | int | Decimal) -> str:
    """Convert base units back to a QCC amount string.

    >>> from_base_units("1500000000000000000")
    '1.5'
    """
    value = parse_amount(units)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _plain(value / UNITS_PER_QCC)


def validate_send_amount(amount: str, balance: str | int | Decimal | None = None) -> Decimal:
    """Reject zero, negative and (when *balance* is known) overdrawn amounts."""
    value = parse_amount(amount)
    if value <= 0:
        raise InvalidAmountError()
    if balance is not None and value > parse_amount(balance):
        raise InvalidAmountError("Insufficient balance")
    return value


def format_amount(amount: str | int | Decimal, currency: str = "QCC") -> str:
    """Return a human-readable amount string."""
    return f"{_plain(parse_amount(amount))} {currency}"
