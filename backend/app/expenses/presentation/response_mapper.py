from typing import Any, Dict

from app.expenses.domain.models import Expense


def expense_to_response(expense: Expense) -> Dict[str, Any]:
    return {
        "id": expense.id,
        "supervisor_id": expense.supervisor_id,
        "supervisor_name": expense.supervisor_name,
        "site_id": expense.site_id,
        "site_name": expense.site_name,
        "material_id": expense.material_id,
        "material_name": expense.material_name,
        "quantity": expense.quantity,
        "price_per_unit": expense.price_per_unit,
        "total_amount": expense.total_amount,
        "bill_number": expense.bill_number,
        "bill_name": expense.bill_name,
        "bill_type": expense.bill_type,
        "status": expense.status,
        "rejection_reason": expense.rejection_reason,
        "is_price_changed": expense.is_price_changed,
        "approved_by": expense.approved_by,
        "approved_at": expense.approved_at.isoformat() if expense.approved_at else None,
        "date": expense.date.isoformat() if expense.date else None,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
    }
