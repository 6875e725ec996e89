"""
Tests for 18 decimal place precision of QCC amounts.

    1 QCC = 10**18 base units

Covers precision constants, scaling to and from base units without float
rounding, amount validation and display formatting.
"""

from decimal import Decimal

import pytest

from qcc_core.errors import InvalidAmountError
from qcc_core.precision import (
    QCC_DECIMALS,
    UNITS_PER_QCC,
    format_amount,
    from_base_units,
    parse_amount,
    to_base_units,
    validate_send_amount,
)


# ═══════════════════════════════════════════════════════════════════════
#  Precision constants
# ═══════════════════════════════════════════════════════════════════════


class TestPrecisionConstants:

    def test_qcc_decimals(self):
        assert QCC_DECIMALS == 18

    def test_units_per_qcc(self):
        assert UNITS_PER_QCC == 1_000_000_000_000_000_000


# ═══════════════════════════════════════════════════════════════════════
#  Scaling
# ═══════════════════════════════════════════════════════════════════════


class TestToBaseUnits:

    @pytest.mark.parametrize("amount, expected", [
        ("1", "1000000000000000000"),
        ("0.5", "500000000000000000"),
        ("1.5", "1500000000000000000"),
        ("0.000000000000000001", "1"),
        ("0", "0"),
        ("1e2", "100000000000000000000"),
        (" 2 ", "2000000000000000000"),
        (3, "3000000000000000000"),
        ("123456789.123456789123456789", "123456789123456789123456789"),
    ])
    def test_values(self, amount, expected):
        assert to_base_units(amount) == expected

    def test_no_exponent_for_large_values(self):
        out = to_base_units("1000000000000")
        assert "E" not in out and "e" not in out
        assert out == "1" + "0" * 30

    def test_sub_unit_kept_as_fraction(self):
        assert to_base_units("0.0000000000000000015") == "1.5"

    @pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity", None])
    def test_rejects_garbage(self, bad):
        with pytest.raises(InvalidAmountError):
            to_base_units(bad)

    def test_rejects_float(self):
        with pytest.raises(InvalidAmountError):
            to_base_units(0.1)

    def test_rejects_bool(self):
        with pytest.raises(InvalidAmountError):
            to_base_units(True)


class TestFromBaseUnits:

    def test_values(self):
        assert from_base_units("1500000000000000000") == "1.5"
        assert from_base_units(1) == "0.000000000000000001"
        assert from_base_units("0") == "0"

    def test_inverse_of_to_base_units(self):
        for amount in ["1", "0.25", "42.000000000000000001"]:
            assert from_base_units(to_base_units(amount)) == amount


# ═══════════════════════════════════════════════════════════════════════
#  Validation and formatting
# ═══════════════════════════════════════════════════════════════════════


class TestValidateSendAmount:

    def test_positive(self):
        assert validate_send_amount("1.5") == Decimal("1.5")

    @pytest.mark.parametrize("bad", ["0", "-1", "0.0"])
    def test_not_positive(self, bad):
        with pytest.raises(InvalidAmountError):
            validate_send_amount(bad)

    def test_within_balance(self):
        assert validate_send_amount("2", balance="2") == Decimal("2")

    def test_insufficient_balance(self):
        with pytest.raises(InvalidAmountError, match="Insufficient balance"):
            validate_send_amount("5", balance=4)


class TestFormatAmount:

    def test_trailing_zeros_dropped(self):
        assert format_amount("1.50") == "1.5 QCC"

    def test_custom_currency(self):
        assert format_amount("3", currency="uQCC") == "3 uQCC"

    def test_parse_amount_returns_decimal(self):
        assert parse_amount("0.1") == Decimal("0.1")
