from decimal import Decimal

from backoffice.lib.money import round2, safe_ratio, sum_amounts, sum_signed, to_decimal


def test_to_decimal_handles_garbage():
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("") == Decimal("0")
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal("1,234.50") == Decimal("1234.50")
    assert to_decimal(0.1) == Decimal("0.1")


def test_round2_is_half_up():
    assert round2("2.675") == Decimal("2.68")
    assert round2("2.665") == Decimal("2.67")
    assert round2(-1.005) == Decimal("-1.01")


def test_sum_amounts_clamps_negative_rows_and_rounds_once():
    assert sum_amounts(["0.005", "0.005", "-100"]) == Decimal("0.01")
    assert sum_amounts([]) == Decimal("0.00")


def test_sum_signed_keeps_reversals():
    assert sum_signed(["10", "-2.5"]) == Decimal("7.50")


def test_safe_ratio_zero_denominator():
    assert safe_ratio(10, 0) == Decimal("0")
    assert safe_ratio(10, 4) == Decimal("2.5")


def test_non_finite_values_are_zero():
    assert to_decimal(float("inf")) == 0
    assert to_decimal("NaN") == 0
    assert round2(float("-inf")) == 0
