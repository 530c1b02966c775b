import pytest

from app.expenses.domain.calculations import (
    balance,
    expense_total,
    is_price_changed,
    sum_amounts,
    wage_total,
)
from app.expenses.domain.errors import InvalidTransition
from app.expenses.domain.lifecycle import check_transition
from app.expenses.domain.models import ExpenseStatus


def test_expense_total_rounds_to_cents():
    assert expense_total(3, 33.333) == 100.0
    assert expense_total(0.1, 0.2) == 0.02
    assert expense_total(12, 415.5) == 4986.0


def test_wage_total():
    assert wage_total(2.5, 850) == 2125.0
    assert wage_total(1, 999.999) == 1000.0


@pytest.mark.parametrize(
    "base_price,price,expected",
    [
        (None, 120.0, False),
        (400.0, 400.0, False),
        (400.0, 400.001, False),
        (400.0, 400.01, True),
        (400.0, 380.0, True),
        (0.0, 0.0, False),
    ],
)
def test_is_price_changed(base_price, price, expected):
    assert is_price_changed(base_price, price) is expected


def test_sum_and_balance():
    assert sum_amounts([]) == 0.0
    assert sum_amounts([0.1, 0.2]) == 0.3
    assert sum_amounts(x for x in (1000.0, 250.55, 49.45)) == 1300.0
    assert balance(50000.0, 12345.678) == 37654.32
    assert balance(100.0, 250.0) == -150.0


def test_pending_can_be_approved_or_rejected():
    check_transition(ExpenseStatus.PENDING, ExpenseStatus.APPROVED)
    check_transition(ExpenseStatus.PENDING, ExpenseStatus.REJECTED)


def test_rejected_only_returns_to_pending():
    check_transition(ExpenseStatus.REJECTED, ExpenseStatus.PENDING)

    with pytest.raises(InvalidTransition) as exc_info:
        check_transition(ExpenseStatus.REJECTED, ExpenseStatus.APPROVED)
    assert "resubmitted" in exc_info.value.message


@pytest.mark.parametrize("target", ExpenseStatus.ALL)
def test_approved_is_terminal(target):
    with pytest.raises(InvalidTransition) as exc_info:
        check_transition(ExpenseStatus.APPROVED, target)
    assert exc_info.value.message == "Cannot change status of approved expense"


def test_pending_to_pending_is_not_a_transition():
    with pytest.raises(InvalidTransition):
        check_transition(ExpenseStatus.PENDING, ExpenseStatus.PENDING)
