import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from app.expenses.application.ports import (
    ExpenseRepository,
    ExpenseSheetSink,
    SheetSyncError,
)
from app.expenses.domain.calculations import expense_total, is_price_changed
from app.expenses.domain.errors import (
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SheetSyncFailed,
)
from app.expenses.domain.lifecycle import check_transition
from app.expenses.domain.models import (
    AuditEntry,
    Expense,
    ExpenseFilters,
    ExpenseStatus,
    MaterialSummary,
    Role,
    UserSummary,
    build_sheet_row,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitExpenseCommand:
    site_id: str
    quantity: float
    price_per_unit: float
    material_name: Optional[str] = None
    material_id: Optional[str] = None
    bill_number: Optional[str] = None
    bill_name: Optional[str] = None
    bill_type: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ResubmitExpenseCommand:
    expense_id: str
    site_id: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    quantity: Optional[float] = None
    price_per_unit: Optional[float] = None
    bill_number: Optional[str] = None
    bill_name: Optional[str] = None
    bill_type: Optional[str] = None


@dataclass(frozen=True)
class ChangeExpenseStatusCommand:
    expense_id: str
    status: str
    rejection_reason: Optional[str] = None


@dataclass(frozen=True)
class ListExpensesQuery:
    status: Optional[str] = None
    site_id: Optional[str] = None
    limit: int = 100
    offset: int = 0


IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]


def _validate_amounts(quantity: float, price_per_unit: float) -> None:
    if quantity <= 0:
        raise InvalidRequest("Quantity must be greater than zero")
    if price_per_unit < 0:
        raise InvalidRequest("Price per unit cannot be negative")


def _override(value: Optional[str], current: Optional[str]) -> Optional[str]:
    # None keeps the stored value, an empty string clears it
    return current if value is None else (value.strip() or None)


async def _record_transition(
    repository: ExpenseRepository,
    entry_id: str,
    expense: Expense,
    action: str,
    current_user: UserSummary,
    timestamp: datetime,
    description: str,
) -> None:
    await repository.add_audit_entry(
        AuditEntry(
            id=entry_id,
            entity_type="expense",
            entity_id=expense.id,
            action=action,
            user_id=current_user.id,
            user_name=current_user.name,
            user_role=current_user.role,
            description=description,
            timestamp=timestamp,
            changes=json.dumps({"status": expense.status}),
        )
    )


async def _resolve_material(
    repository: ExpenseRepository, material_id: Optional[str]
) -> Optional[MaterialSummary]:
    if not material_id:
        return None
    material = await repository.get_material(material_id)
    if material is None:
        raise NotFound("Material not found")
    return material


class SubmitExpenseUseCase:
    def __init__(
        self,
        repository: ExpenseRepository,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._id_generator = id_generator
        self._clock = clock

    async def execute(
        self,
        command: SubmitExpenseCommand,
        current_user: UserSummary,
    ) -> Expense:
        if current_user.role not in (Role.SUPERVISOR, Role.MANAGER):
            raise PermissionDenied("Not authorized to submit expenses")

        _validate_amounts(command.quantity, command.price_per_unit)

        site = await self._repository.get_site(command.site_id)
        if site is None:
            raise NotFound("Site not found")

        material = await _resolve_material(self._repository, command.material_id)

        material_name = (command.material_name or "").strip()
        if not material_name and material is not None:
            material_name = material.name
        if not material_name:
            raise InvalidRequest("Material name is required")

        now = self._clock()
        expense = Expense(
            id=self._id_generator(),
            supervisor_id=current_user.id,
            supervisor_name=current_user.name,
            site_id=site.id,
            site_name=site.name,
            material_id=material.id if material else None,
            material_name=material_name,
            quantity=command.quantity,
            price_per_unit=command.price_per_unit,
            total_amount=expense_total(command.quantity, command.price_per_unit),
            bill_number=command.bill_number,
            bill_name=command.bill_name,
            bill_type=command.bill_type,
            status=ExpenseStatus.PENDING,
            is_price_changed=is_price_changed(
                material.base_price if material else None, command.price_per_unit
            ),
            date=command.date or now,
            created_at=now,
            updated_at=now,
        )

        await self._repository.add_expense(expense)
        await self._repository.commit()

        return expense


class ListExpensesUseCase:
    def __init__(
        self,
        repository: ExpenseRepository,
        max_limit: int = 500,
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self,
        query: ListExpensesQuery,
        current_user: UserSummary,
    ) -> Sequence[Expense]:
        if query.status is not None and query.status not in ExpenseStatus.ALL:
            raise InvalidRequest("Unknown expense status")

        filters = ExpenseFilters(
            status=query.status,
            site_id=query.site_id,
            limit=max(1, min(query.limit, self._max_limit)),
            offset=max(0, query.offset),
        )
        if current_user.role == Role.SUPERVISOR:
            filters = replace(filters, supervisor_id=current_user.id)

        return await self._repository.list_expenses(filters)


class GetExpenseUseCase:
    def __init__(self, repository: ExpenseRepository) -> None:
        self._repository = repository

    async def execute(self, expense_id: str, current_user: UserSummary) -> Expense:
        expense = await self._repository.get_expense(expense_id)
        if expense is None:
            raise NotFound("Expense not found")
        if current_user.role == Role.SUPERVISOR and expense.supervisor_id != current_user.id:
            raise PermissionDenied("Not authorized to view this expense")
        return expense


class ChangeExpenseStatusUseCase:
    """Approve or reject a pending expense.

    Approval appends the expense to the spreadsheet first and only flips the
    local status once that append succeeded, so the sheet and the database
    either both show the expense as approved or neither does. The append is
    keyed by expense id, which makes a retry after a failed local commit safe.
    """

    def __init__(
        self,
        repository: ExpenseRepository,
        sheet_sink: ExpenseSheetSink,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._sheet_sink = sheet_sink
        self._id_generator = id_generator
        self._clock = clock

    async def execute(
        self,
        command: ChangeExpenseStatusCommand,
        current_user: UserSummary,
    ) -> Expense:
        if current_user.role != Role.MANAGER:
            raise PermissionDenied("Only the manager can approve or reject expenses")

        expense = await self._repository.get_expense(command.expense_id, for_update=True)
        if expense is None:
            raise NotFound("Expense not found")

        if expense.status == ExpenseStatus.APPROVED:
            raise InvalidTransition("Cannot change status of approved expense")

        if command.status not in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
            raise InvalidRequest("Status must be Approved or Rejected")

        check_transition(expense.status, command.status)

        if command.status == ExpenseStatus.REJECTED:
            return await self._reject(expense, command.rejection_reason, current_user)
        return await self._approve(expense, current_user)

    async def _reject(
        self,
        expense: Expense,
        rejection_reason: Optional[str],
        current_user: UserSummary,
    ) -> Expense:
        reason = (rejection_reason or "").strip()
        if not reason:
            raise InvalidRequest("Rejection reason is mandatory")

        now = self._clock()
        rejected = replace(
            expense,
            status=ExpenseStatus.REJECTED,
            rejection_reason=reason,
            updated_at=now,
        )
        await self._repository.save_expense(rejected)
        await self._record(
            rejected, "reject", current_user, now,
            f"Rejected expense {expense.material_name} at {expense.site_name}: {reason}",
        )
        await self._repository.commit()

        logger.info(f"Expense {expense.id} rejected by {current_user.name}")
        return rejected

    async def _approve(self, expense: Expense, current_user: UserSummary) -> Expense:
        now = self._clock()
        row = build_sheet_row(expense, approved_by=current_user.name, approved_at=now)

        try:
            appended = await self._sheet_sink.append_expense(expense.site_name, row)
        except SheetSyncError as exc:
            await self._repository.rollback()
            logger.error(f"Failed to update Google Sheet for expense {expense.id}: {exc}")
            raise SheetSyncFailed("Failed to update Google Sheet. Approval aborted.") from exc

        if not appended:
            logger.info(f"Expense {expense.id} already present in sheet '{expense.site_name}'")

        approved = replace(
            expense,
            status=ExpenseStatus.APPROVED,
            rejection_reason="",
            approved_by=current_user.name,
            approved_at=now,
            updated_at=now,
        )
        await self._repository.save_expense(approved)
        await self._record(
            approved, "approve", current_user, now,
            f"Approved expense {expense.material_name} at {expense.site_name}",
        )

        try:
            await self._repository.commit()
        except Exception:
            await self._repository.rollback()
            logger.exception(
                f"Expense {expense.id} is in the sheet but the local approval was not saved"
            )
            raise

        logger.info(f"Expense {expense.id} approved by {current_user.name}")
        return approved

    async def _record(
        self,
        expense: Expense,
        action: str,
        current_user: UserSummary,
        timestamp: datetime,
        description: str,
    ) -> None:
        await _record_transition(
            self._repository, self._id_generator(), expense, action,
            current_user, timestamp, description,
        )


class ResubmitExpenseUseCase:
    """Edit a rejected expense and send it back to the approval queue."""

    def __init__(
        self,
        repository: ExpenseRepository,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._id_generator = id_generator
        self._clock = clock

    async def execute(
        self,
        command: ResubmitExpenseCommand,
        current_user: UserSummary,
    ) -> Expense:
        expense = await self._repository.get_expense(command.expense_id, for_update=True)
        if expense is None:
            raise NotFound("Expense not found")

        if expense.supervisor_id != current_user.id:
            raise PermissionDenied("Not authorized to edit this expense")

        if expense.status != ExpenseStatus.REJECTED:
            raise InvalidRequest("Can only edit rejected expenses")

        site_id, site_name = expense.site_id, expense.site_name
        if command.site_id and command.site_id != expense.site_id:
            site = await self._repository.get_site(command.site_id)
            if site is None:
                raise NotFound("Site not found")
            site_id, site_name = site.id, site.name

        material_id = command.material_id or expense.material_id
        material = await _resolve_material(self._repository, material_id)

        quantity = command.quantity if command.quantity is not None else expense.quantity
        price_per_unit = (
            command.price_per_unit
            if command.price_per_unit is not None
            else expense.price_per_unit
        )
        _validate_amounts(quantity, price_per_unit)

        material_name = (command.material_name or "").strip() or expense.material_name
        if command.material_id and not (command.material_name or "").strip() and material:
            material_name = material.name

        check_transition(expense.status, ExpenseStatus.PENDING)
        now = self._clock()
        resubmitted = replace(
            expense,
            site_id=site_id,
            site_name=site_name,
            material_id=material_id,
            material_name=material_name,
            quantity=quantity,
            price_per_unit=price_per_unit,
            total_amount=expense_total(quantity, price_per_unit),
            bill_number=_override(command.bill_number, expense.bill_number),
            bill_name=_override(command.bill_name, expense.bill_name),
            bill_type=_override(command.bill_type, expense.bill_type),
            is_price_changed=is_price_changed(
                material.base_price if material else None, price_per_unit
            ),
            status=ExpenseStatus.PENDING,
            rejection_reason="",
            updated_at=now,
        )

        await self._repository.save_expense(resubmitted)
        await _record_transition(
            self._repository, self._id_generator(), resubmitted, "resubmit",
            current_user, now,
            f"Resubmitted expense {resubmitted.material_name} at {resubmitted.site_name}",
        )
        await self._repository.commit()

        logger.info(f"Expense {expense.id} resubmitted by {current_user.name}")

        return resubmitted
