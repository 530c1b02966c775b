from app.expenses.domain.errors import InvalidTransition
from app.expenses.domain.models import ExpenseStatus

# Pending -> Approved is terminal; Rejected only returns to Pending on resubmission.
ALLOWED_TRANSITIONS = {
    ExpenseStatus.PENDING: {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED},
    ExpenseStatus.REJECTED: {ExpenseStatus.PENDING},
    ExpenseStatus.APPROVED: set(),
}


def check_transition(current: str, target: str) -> None:
    if current == ExpenseStatus.APPROVED:
        raise InvalidTransition("Cannot change status of approved expense")
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        if current == ExpenseStatus.REJECTED:
            raise InvalidTransition(
                "Rejected expenses must be resubmitted before they can be reviewed"
            )
        raise InvalidTransition(f"Cannot change expense status from {current} to {target}")
