from decimal import Decimal

import pytest

from forta_multi_bot.errors import (
    EvaluationError,
    MalformedExpression,
    UnknownField,
    UnsupportedLiteral,
    UnsupportedOperator,
)
from forta_multi_bot.expressions import evaluate_expression, parse_expression, to_decimal

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def test_parse_is_deterministic() -> None:
    first = parse_expression("value >= 1000")
    second = parse_expression("value >= 1000")
    assert first == second
    assert first.literal_type == "numeric"
    assert first.literal_value == Decimal(1000)


def test_parse_classifies_address_and_boolean_literals() -> None:
    address = parse_expression("to === 0x9B68C14E936104E9A7A24C712BEECDC220002984")
    assert address.literal_type == "address"
    assert address.literal_value == "0x9b68c14e936104e9a7a24c712beecdc220002984"

    boolean = parse_expression("paused !== TRUE")
    assert boolean.literal_type == "boolean"
    assert boolean.literal_value is True


def test_address_and_boolean_literals_only_allow_equality() -> None:
    parse_expression(f"f === {ZERO_ADDRESS}")
    parse_expression("f !== true")

    with pytest.raises(UnsupportedOperator):
        parse_expression(f"f > {ZERO_ADDRESS}")
    with pytest.raises(UnsupportedOperator):
        parse_expression("f >= true")


def test_parse_rejects_malformed_input() -> None:
    with pytest.raises(MalformedExpression):
        parse_expression("value >")
    with pytest.raises(UnsupportedLiteral):
        parse_expression("name === alice")
    with pytest.raises(UnsupportedOperator):
        parse_expression("value ~ 5")


def test_numeric_comparison() -> None:
    args = {"f": 100}
    assert evaluate_expression(parse_expression("f > 99"), args) is True
    assert evaluate_expression(parse_expression("f > 100"), args) is False
    assert evaluate_expression(parse_expression("f === 100"), args) is True
    assert evaluate_expression(parse_expression("f <= 100.5"), args) is True


def test_numeric_comparison_handles_uint256_values() -> None:
    big = 2**256 - 1
    assert evaluate_expression(parse_expression(f"amount === {big}"), {"amount": big}) is True
    assert evaluate_expression(parse_expression(f"amount < {big}"), {"amount": big - 1}) is True


def test_address_comparison_ignores_case() -> None:
    expression = parse_expression("to === 0x9b68c14e936104e9a7a24c712beecdc220002984")
    assert evaluate_expression(expression, {"to": "0x9B68c14e936104e9a7a24c712BEecdc220002984"})


def test_boolean_comparison_accepts_strings() -> None:
    expression = parse_expression("paused === true")
    assert evaluate_expression(expression, {"paused": True}) is True
    assert evaluate_expression(expression, {"paused": "false"}) is False


def test_unknown_field_lists_available_arguments() -> None:
    with pytest.raises(UnknownField) as exc_info:
        evaluate_expression(parse_expression("amount > 1"), {"from": "0x1", "value": 3}, "a Transfer log")
    assert exc_info.value.available == ["from", "value"]
    assert "a Transfer log" in str(exc_info.value)


def test_non_numeric_value_is_an_evaluation_error() -> None:
    with pytest.raises(EvaluationError):
        evaluate_expression(parse_expression("amount > 1"), {"amount": "lots"})


def test_to_decimal_parses_hex_and_rejects_bools() -> None:
    assert to_decimal("0x10") == Decimal(16)
    assert to_decimal(True) is None
    assert to_decimal("nan") is None
