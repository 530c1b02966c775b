from typing import Optional, Sequence

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.expenses.application.ports import ExpenseRepository
from app.expenses.domain.models import (
    AuditEntry,
    Expense,
    ExpenseFilters,
    MaterialSummary,
    SiteSummary,
)
from database import (
    AuditLog,
    Expense as ExpenseModel,
    Material,
    Site,
)


def expense_from_row(row: ExpenseModel) -> Expense:
    return Expense(
        id=row.id,
        supervisor_id=row.supervisor_id,
        supervisor_name=row.supervisor_name,
        site_id=row.site_id,
        site_name=row.site_name,
        material_id=row.material_id,
        material_name=row.material_name,
        quantity=row.quantity,
        price_per_unit=row.price_per_unit,
        total_amount=row.total_amount,
        bill_number=row.bill_number,
        bill_name=row.bill_name,
        bill_type=row.bill_type,
        status=row.status,
        rejection_reason=row.rejection_reason or "",
        is_price_changed=bool(row.is_price_changed),
        date=row.date,
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemyExpenseRepository(ExpenseRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_site(self, site_id: str) -> Optional[SiteSummary]:
        result = await self._session.execute(select(Site).where(Site.id == site_id))
        site = result.scalar_one_or_none()
        if site is None:
            return None
        return SiteSummary(id=site.id, name=site.name)

    async def get_material(self, material_id: str) -> Optional[MaterialSummary]:
        result = await self._session.execute(
            select(Material).where(Material.id == material_id)
        )
        material = result.scalar_one_or_none()
        if material is None:
            return None
        return MaterialSummary(
            id=material.id, name=material.name, base_price=material.base_price
        )

    async def _get_row(self, expense_id: str, for_update: bool = False) -> Optional[ExpenseModel]:
        query = select(ExpenseModel).where(ExpenseModel.id == expense_id)
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def get_expense(self, expense_id: str, for_update: bool = False) -> Optional[Expense]:
        row = await self._get_row(expense_id, for_update=for_update)
        if row is None:
            return None
        return expense_from_row(row)

    async def add_expense(self, expense: Expense) -> None:
        self._session.add(
            ExpenseModel(
                id=expense.id,
                supervisor_id=expense.supervisor_id,
                supervisor_name=expense.supervisor_name,
                site_id=expense.site_id,
                site_name=expense.site_name,
                material_id=expense.material_id,
                material_name=expense.material_name,
                quantity=expense.quantity,
                price_per_unit=expense.price_per_unit,
                total_amount=expense.total_amount,
                bill_number=expense.bill_number,
                bill_name=expense.bill_name,
                bill_type=expense.bill_type,
                status=expense.status,
                rejection_reason=expense.rejection_reason,
                is_price_changed=expense.is_price_changed,
                date=expense.date,
                created_at=expense.created_at,
                updated_at=expense.updated_at,
            )
        )

    async def save_expense(self, expense: Expense) -> None:
        # Already in the identity map after get_expense, so no extra query.
        row = await self._session.get(ExpenseModel, expense.id)
        if row is None:
            raise LookupError(f"Expense {expense.id} is not loaded")

        row.site_id = expense.site_id
        row.site_name = expense.site_name
        row.material_id = expense.material_id
        row.material_name = expense.material_name
        row.quantity = expense.quantity
        row.price_per_unit = expense.price_per_unit
        row.total_amount = expense.total_amount
        row.bill_number = expense.bill_number
        row.bill_name = expense.bill_name
        row.bill_type = expense.bill_type
        row.status = expense.status
        row.rejection_reason = expense.rejection_reason
        row.is_price_changed = expense.is_price_changed
        row.approved_by = expense.approved_by
        row.approved_at = expense.approved_at
        row.updated_at = expense.updated_at

    async def list_expenses(self, filters: ExpenseFilters) -> Sequence[Expense]:
        query = select(ExpenseModel)

        if filters.supervisor_id:
            query = query.where(ExpenseModel.supervisor_id == filters.supervisor_id)
        if filters.status:
            query = query.where(ExpenseModel.status == filters.status)
        if filters.site_id:
            query = query.where(ExpenseModel.site_id == filters.site_id)

        query = query.order_by(desc(ExpenseModel.created_at))
        query = query.limit(filters.limit).offset(filters.offset)

        result = await self._session.execute(query)
        return [expense_from_row(row) for row in result.scalars().all()]

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        self._session.add(
            AuditLog(
                id=entry.id,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
                changes=entry.changes,
                user_id=entry.user_id,
                user_name=entry.user_name,
                user_role=entry.user_role,
                description=entry.description,
                timestamp=entry.timestamp,
            )
        )

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
