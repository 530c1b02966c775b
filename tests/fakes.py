from dataclasses import replace
from datetime import datetime

from app.expenses.application.ports import SheetSyncError
from app.expenses.domain.models import Expense, ExpenseStatus


def make_expense(**overrides) -> Expense:
    created = datetime(2026, 3, 2, 9, 30, 0)
    fields = dict(
        id="exp-1",
        supervisor_id="sup-1",
        supervisor_name="e1",
        site_id="site-1",
        site_name="Tower A",
        material_id="mat-1",
        material_name="Cement",
        quantity=10,
        price_per_unit=400.0,
        total_amount=4000.0,
        status=ExpenseStatus.PENDING,
        date=created,
        created_at=created,
        updated_at=created,
        bill_number="B-17",
        bill_name="Sri Traders",
    )
    fields.update(overrides)
    return Expense(**fields)


class FakeExpenseRepository:
    def __init__(self) -> None:
        self.sites = {}
        self.materials = {}
        self.expenses = {}
        self.audit_entries = []
        self.committed = False
        self.rollbacks = 0
        self.commit_error = None
        self.locked = []
        self.last_filters = None
        self._staged = {}
        self._staged_audit = []

    async def get_site(self, site_id):
        return self.sites.get(site_id)

    async def get_material(self, material_id):
        return self.materials.get(material_id)

    async def get_expense(self, expense_id, for_update=False):
        if for_update:
            self.locked.append(expense_id)
        return self.expenses.get(expense_id)

    async def add_expense(self, expense):
        self.expenses[expense.id] = expense

    async def save_expense(self, expense):
        self._staged[expense.id] = expense

    async def list_expenses(self, filters):
        self.last_filters = filters
        results = [
            e for e in self.expenses.values()
            if (filters.supervisor_id is None or e.supervisor_id == filters.supervisor_id)
            and (filters.status is None or e.status == filters.status)
            and (filters.site_id is None or e.site_id == filters.site_id)
        ]
        results.sort(key=lambda e: e.created_at, reverse=True)
        return results[filters.offset:filters.offset + filters.limit]

    async def add_audit_entry(self, entry):
        self._staged_audit.append(entry)

    async def commit(self):
        if self.commit_error is not None:
            raise self.commit_error
        self.expenses.update(self._staged)
        self.audit_entries.extend(self._staged_audit)
        self._staged = {}
        self._staged_audit = []
        self.committed = True

    async def rollback(self):
        self._staged = {}
        self._staged_audit = []
        self.rollbacks += 1


class FakeSheetSink:
    """Records appended rows keyed by expense id, like the real sheet."""

    def __init__(self, error=None) -> None:
        self.error = error
        self.rows = {}
        self.calls = []
        self.tabs = set()

    async def ensure_site_tab(self, site_name):
        if self.error is not None:
            raise self.error
        created = site_name not in self.tabs
        self.tabs.add(site_name)
        return created

    async def append_expense(self, site_name, row):
        self.calls.append((site_name, row))
        if self.error is not None:
            raise self.error
        self.tabs.add(site_name)
        if row.expense_id in self.rows:
            return False
        self.rows[row.expense_id] = (site_name, list(row.values))
        return True


def failing_sink(message="quota exceeded") -> FakeSheetSink:
    return FakeSheetSink(error=SheetSyncError(message))


def approved(expense: Expense) -> Expense:
    return replace(expense, status=ExpenseStatus.APPROVED, approved_by="admin")
