from __future__ import annotations

from collections import deque
from decimal import Decimal, localcontext

# Enough significant digits for 256-bit on-chain integers.
PRECISION = 100


class RollingWindow:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("RollingWindow capacity must be at least 1")
        self.capacity = capacity
        self._values: deque[Decimal] = deque(maxlen=capacity)

    def push(self, value: Decimal) -> None:
        self._values.append(value)

    def count(self) -> int:
        return len(self._values)

    def average(self) -> Decimal:
        if not self._values:
            raise ValueError("average() of an empty RollingWindow")
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return sum(self._values, Decimal(0)) / len(self._values)

    def values(self) -> list[Decimal]:
        return list(self._values)


def percent_change(current: Decimal, average: Decimal) -> Decimal | None:
    # Undefined against a zero average.
    if average == 0:
        return None
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return abs(current - average) / average * 100


def check_threshold(threshold_percent: Decimal, current: Decimal, window: RollingWindow) -> Decimal | None:
    """Returns the percent change when it exceeds threshold_percent, else None."""
    change = percent_change(current, window.average())
    if change is None or change <= threshold_percent:
        return None
    return change


def format_decimal(value: Decimal) -> str:
    if value == value.to_integral_value():
        return format(value.to_integral_value(), "f")
    return format(value.normalize(), "f")
