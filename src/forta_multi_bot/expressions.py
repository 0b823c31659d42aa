from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import (
    EvaluationError,
    MalformedExpression,
    UnknownField,
    UnsupportedLiteral,
    UnsupportedOperator,
)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

EQUALITY_OPERATORS = ("===", "!==")
NUMERIC_OPERATORS = ("<", "<=", "===", "!==", ">=", ">")

Comparator = Callable[[Any, str, Any], bool]


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    text = str(value).strip()
    if text.lower().startswith("0x"):
        try:
            return Decimal(int(text, 16))
        except ValueError:
            return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def is_numeric(value: Any) -> bool:
    return to_decimal(value) is not None


def address_comparison(variable: Any, operator: str, operand: str) -> bool:
    left = str(variable).lower()
    if operator == "===":
        return left == operand
    if operator == "!==":
        return left != operand
    raise UnsupportedOperator(f"Address operator {operator} not supported")


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return None


def boolean_comparison(variable: Any, operator: str, operand: bool) -> bool:
    left = _as_bool(variable)
    if operator == "===":
        return left is operand
    if operator == "!==":
        return left is not operand
    raise UnsupportedOperator(f"Boolean operator {operator} not supported")


def decimal_comparison(variable: Decimal, operator: str, operand: Decimal) -> bool:
    if operator == "===":
        return variable == operand
    if operator == "!==":
        return variable != operand
    if operator == ">=":
        return variable >= operand
    if operator == ">":
        return variable > operand
    if operator == "<=":
        return variable <= operand
    if operator == "<":
        return variable < operand
    raise UnsupportedOperator(f"Numeric operator {operator} not supported")


@dataclass(frozen=True)
class Expression:
    field_name: str
    operator: str
    literal_type: str
    literal_value: Any
    comparator: Comparator = field(compare=False, repr=False)
    source: str = field(default="", compare=False)


def parse_expression(expression: str) -> Expression:
    parts = expression.split()
    if len(parts) != 3:
        raise MalformedExpression(
            f"Expression must contain three terms: variable operator value (got {expression!r})"
        )

    field_name, operator, value = parts
    source = " ".join(parts)

    if is_address(value):
        if operator not in EQUALITY_OPERATORS:
            raise UnsupportedOperator(
                f'Unsupported address operator "{operator}": must be "===" or "!=="'
            )
        return Expression(field_name, operator, "address", value.lower(), address_comparison, source)

    if value.lower() in ("true", "false"):
        if operator not in EQUALITY_OPERATORS:
            raise UnsupportedOperator(
                f'Unsupported Boolean operator "{operator}": must be "===" or "!=="'
            )
        return Expression(
            field_name, operator, "boolean", value.lower() == "true", boolean_comparison, source
        )

    number = to_decimal(value)
    if number is not None:
        if operator not in NUMERIC_OPERATORS:
            raise UnsupportedOperator(
                f'Unsupported numeric operator "{operator}": must be <, <=, ===, !==, >=, or >'
            )
        return Expression(field_name, operator, "numeric", number, decimal_comparison, source)

    raise UnsupportedLiteral(f"Unsupported string specifying value: {value}")


def evaluate_expression(
    expression: Expression, args: Mapping[str, Any], source_name: str = "decoded arguments"
) -> bool:
    if expression.field_name not in args:
        raise UnknownField(expression.field_name, source_name, [str(k) for k in args])

    value = args[expression.field_name]
    if expression.literal_type == "numeric":
        converted = to_decimal(value)
        if converted is None:
            raise EvaluationError(f"Value {value!r} of {expression.field_name} is not numeric")
        value = converted

    return expression.comparator(value, expression.operator, expression.literal_value)
