import pytest

from backoffice.lib.analytics_expression import ExpressionError, evaluate_expression, tokenize, validate_expression


def test_precedence_and_parentheses():
    context = {"revenue": 1000, "cogs": 400, "advertising": 100, "orders": 4}
    assert evaluate_expression("(revenue - cogs - advertising) / orders", context) == 125.0
    assert evaluate_expression("revenue - cogs * 2", context) == 200.0
    assert evaluate_expression("-revenue + 1", context) == -999.0


def test_result_is_rounded_to_two_places():
    assert evaluate_expression("10 / 3", {}) == 3.33


def test_blank_expression_is_none():
    assert evaluate_expression("", {}) is None
    assert evaluate_expression("   ", {}) is None


def test_division_by_zero_makes_result_none():
    assert evaluate_expression("revenue / orders", {"revenue": 10, "orders": 0}) is None
    assert evaluate_expression("1 + revenue / orders * 2", {"revenue": 10, "orders": 0}) is None


def test_unknown_metric_and_syntax_errors():
    with pytest.raises(ExpressionError):
        evaluate_expression("profit * 2", {"revenue": 1})
    with pytest.raises(ExpressionError):
        evaluate_expression("(1 + 2", {})
    with pytest.raises(ExpressionError):
        evaluate_expression("1 2", {})
    with pytest.raises(ExpressionError):
        tokenize("revenue % 2")


def test_validate_expression_reports_message():
    assert validate_expression("revenue / orders", ["revenue", "orders"]) is None
    assert "Unknown metric" in validate_expression("revenue / units", ["revenue"])


def test_oversized_literal_is_rejected():
    message = validate_expression("revenue * " + "9" * 400, ["revenue"])
    assert message.startswith("Number out of range")


def test_overflowing_result_is_none():
    assert evaluate_expression("big * big", {"big": 1e200}) is None
    assert evaluate_expression("big + 1", {"big": 1e30}) == 1e30
