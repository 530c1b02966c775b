from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence


class ExpenseStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class Role:
    MANAGER = "manager"
    SUPERVISOR = "supervisor"


@dataclass(frozen=True)
class UserSummary:
    id: str
    name: str
    role: str


@dataclass(frozen=True)
class SiteSummary:
    id: str
    name: str


@dataclass(frozen=True)
class MaterialSummary:
    id: str
    name: str
    base_price: float


@dataclass(frozen=True)
class Expense:
    id: str
    supervisor_id: str
    supervisor_name: str
    site_id: str
    site_name: str
    material_id: Optional[str]
    material_name: str
    quantity: float
    price_per_unit: float
    total_amount: float
    status: str
    date: datetime
    created_at: datetime
    updated_at: datetime
    bill_number: Optional[str] = None
    bill_name: Optional[str] = None
    bill_type: Optional[str] = None
    rejection_reason: str = ""
    is_price_changed: bool = False
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ExpenseSheetRow:
    """One bookkeeping row; the expense id in the last column keys the append."""

    expense_id: str
    values: Sequence[object]


SHEET_HEADER = (
    "Date",
    "Supervisor Name",
    "Site Name",
    "Material Name",
    "Quantity",
    "Price",
    "Total Amount",
    "Bill Number",
    "Bill Name / Shop Name",
    "Approved By",
    "Approval Date",
    "Expense ID",
)


def build_sheet_row(expense: Expense, approved_by: str, approved_at: datetime) -> ExpenseSheetRow:
    return ExpenseSheetRow(
        expense_id=expense.id,
        values=[
            expense.date.strftime("%Y-%m-%d"),
            expense.supervisor_name or "Unknown",
            expense.site_name,
            expense.material_name,
            expense.quantity,
            expense.price_per_unit,
            expense.total_amount,
            expense.bill_number or "",
            expense.bill_name or "",
            approved_by,
            approved_at.strftime("%Y-%m-%d %H:%M:%S"),
            expense.id,
        ],
    )


@dataclass(frozen=True)
class AuditEntry:
    id: str
    entity_type: str
    entity_id: str
    action: str
    user_id: str
    user_name: str
    user_role: str
    description: str
    timestamp: datetime
    changes: Optional[str] = None


@dataclass(frozen=True)
class ExpenseFilters:
    supervisor_id: Optional[str] = None
    status: Optional[str] = None
    site_id: Optional[str] = None
    limit: int = 100
    offset: int = 0
