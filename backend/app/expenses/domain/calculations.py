"""Money arithmetic shared by expenses, allocations and attendance.

Amounts are stored as floats and rounded to two decimal places whenever a
derived value is produced.
"""
from typing import Iterable, Optional

CENTS = 2


def expense_total(quantity: float, price_per_unit: float) -> float:
    return round(quantity * price_per_unit, CENTS)


def wage_total(number_of_days: float, wage_per_day: float) -> float:
    return round(number_of_days * wage_per_day, CENTS)


def is_price_changed(base_price: Optional[float], price_per_unit: float) -> bool:
    """True when a catalog material was bought at a price other than its base price."""
    if base_price is None:
        return False
    return round(base_price, CENTS) != round(price_per_unit, CENTS)


def sum_amounts(amounts: Iterable[float]) -> float:
    return round(sum(amounts, 0.0), CENTS)


def balance(allocated_total: float, approved_spent: float) -> float:
    return round(allocated_total - approved_spent, CENTS)
