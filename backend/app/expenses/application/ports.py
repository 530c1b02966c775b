from typing import Optional, Protocol, Sequence

from app.expenses.domain.models import (
    AuditEntry,
    Expense,
    ExpenseFilters,
    ExpenseSheetRow,
    MaterialSummary,
    SiteSummary,
)


class SheetSyncError(Exception):
    """Raised by a sheet sink when the external append did not happen."""


class ExpenseRepository(Protocol):
    async def get_site(self, site_id: str) -> Optional[SiteSummary]:
        ...

    async def get_material(self, material_id: str) -> Optional[MaterialSummary]:
        ...

    async def get_expense(self, expense_id: str, for_update: bool = False) -> Optional[Expense]:
        ...

    async def add_expense(self, expense: Expense) -> None:
        ...

    async def save_expense(self, expense: Expense) -> None:
        ...

    async def list_expenses(self, filters: ExpenseFilters) -> Sequence[Expense]:
        ...

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class ExpenseSheetSink(Protocol):
    async def ensure_site_tab(self, site_name: str) -> bool:
        ...

    async def append_expense(self, site_name: str, row: ExpenseSheetRow) -> bool:
        """Append the row; returns False when the expense was already recorded."""
        ...
