"""
Expenses Routes - submission, approval workflow and resubmission
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from functools import lru_cache
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from database import get_postgres_session, User
from app.expenses.application.ports import ExpenseRepository, ExpenseSheetSink
from app.expenses.application.use_cases import (
    ChangeExpenseStatusCommand,
    ChangeExpenseStatusUseCase,
    GetExpenseUseCase,
    ListExpensesQuery,
    ListExpensesUseCase,
    ResubmitExpenseCommand,
    ResubmitExpenseUseCase,
    SubmitExpenseCommand,
    SubmitExpenseUseCase,
)
from app.expenses.domain.errors import (
    DomainError,
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SheetSyncFailed,
)
from app.expenses.domain.models import UserSummary
from app.expenses.infrastructure.google_sheets import build_sheet_sink
from app.expenses.infrastructure.sqlalchemy_repository import SqlAlchemyExpenseRepository
from app.expenses.presentation.response_mapper import expense_to_response
from routes.auth_routes import get_current_user_pg
from settings import app_settings

# Create router
expenses_router = APIRouter(prefix="/api", tags=["Expenses"])


# ==================== PYDANTIC MODELS ====================

class ExpenseCreate(BaseModel):
    site_id: str
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    quantity: float
    price_per_unit: float
    bill_number: Optional[str] = None
    bill_name: Optional[str] = None
    bill_type: Optional[str] = None
    date: Optional[datetime] = None


class ExpenseUpdate(BaseModel):
    site_id: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    quantity: Optional[float] = None
    price_per_unit: Optional[float] = None
    bill_number: Optional[str] = None
    bill_name: Optional[str] = None
    bill_type: Optional[str] = None


class ExpenseStatusUpdate(BaseModel):
    status: str
    rejection_reason: Optional[str] = None


# ==================== DEPENDENCIES ====================

def get_expense_repository(
    session: AsyncSession = Depends(get_postgres_session)
) -> ExpenseRepository:
    return SqlAlchemyExpenseRepository(session)


@lru_cache
def get_expense_sheet_sink() -> ExpenseSheetSink:
    # One instance per process so the access token is cached across requests
    return build_sheet_sink(app_settings)


def to_user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, name=user.username, role=user.role)


ERROR_STATUS = {
    PermissionDenied: 403,
    NotFound: 404,
    InvalidRequest: 400,
    InvalidTransition: 400,
    SheetSyncFailed: 502,
}


def to_http_error(exc: DomainError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(type(exc), 400), detail=exc.message)


# ==================== EXPENSES ROUTES ====================

@expenses_router.get("/expenses")
async def get_expenses(
    status: Optional[str] = None,
    site_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    current_user: User = Depends(get_current_user_pg),
    repository: ExpenseRepository = Depends(get_expense_repository)
):
    """Get expenses - supervisors only see their own"""
    use_case = ListExpensesUseCase(repository)
    query = ListExpensesQuery(status=status, site_id=site_id, limit=limit, offset=offset)
    try:
        expenses = await use_case.execute(query, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_error(exc)

    return [expense_to_response(e) for e in expenses]


@expenses_router.get("/expenses/{expense_id}")
async def get_expense(
    expense_id: str,
    current_user: User = Depends(get_current_user_pg),
    repository: ExpenseRepository = Depends(get_expense_repository)
):
    """Get a single expense"""
    try:
        expense = await GetExpenseUseCase(repository).execute(
            expense_id, to_user_summary(current_user)
        )
    except DomainError as exc:
        raise to_http_error(exc)

    return expense_to_response(expense)


@expenses_router.post("/expenses", status_code=201)
async def submit_expense(
    expense_data: ExpenseCreate,
    current_user: User = Depends(get_current_user_pg),
    repository: ExpenseRepository = Depends(get_expense_repository)
):
    """Submit a material expense - supervisor or manager"""
    use_case = SubmitExpenseUseCase(
        repository=repository,
        id_generator=lambda: str(uuid.uuid4()),
        clock=datetime.utcnow,
    )
    command = SubmitExpenseCommand(
        site_id=expense_data.site_id,
        material_id=expense_data.material_id,
        material_name=expense_data.material_name,
        quantity=expense_data.quantity,
        price_per_unit=expense_data.price_per_unit,
        bill_number=expense_data.bill_number,
        bill_name=expense_data.bill_name,
        bill_type=expense_data.bill_type,
        date=expense_data.date,
    )

    try:
        expense = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_error(exc)

    return expense_to_response(expense)


@expenses_router.put("/expenses/{expense_id}/status")
async def change_expense_status(
    expense_id: str,
    status_data: ExpenseStatusUpdate,
    current_user: User = Depends(get_current_user_pg),
    repository: ExpenseRepository = Depends(get_expense_repository),
    sheet_sink: ExpenseSheetSink = Depends(get_expense_sheet_sink)
):
    """Approve or reject an expense - manager only"""
    use_case = ChangeExpenseStatusUseCase(
        repository=repository,
        sheet_sink=sheet_sink,
        id_generator=lambda: str(uuid.uuid4()),
        clock=datetime.utcnow,
    )
    command = ChangeExpenseStatusCommand(
        expense_id=expense_id,
        status=status_data.status,
        rejection_reason=status_data.rejection_reason,
    )

    try:
        expense = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_error(exc)

    return expense_to_response(expense)


@expenses_router.put("/expenses/{expense_id}")
async def resubmit_expense(
    expense_id: str,
    expense_data: ExpenseUpdate,
    current_user: User = Depends(get_current_user_pg),
    repository: ExpenseRepository = Depends(get_expense_repository)
):
    """Edit a rejected expense and send it back for approval - submitter only"""
    use_case = ResubmitExpenseUseCase(
        repository=repository,
        id_generator=lambda: str(uuid.uuid4()),
        clock=datetime.utcnow,
    )
    command = ResubmitExpenseCommand(
        expense_id=expense_id,
        site_id=expense_data.site_id,
        material_id=expense_data.material_id,
        material_name=expense_data.material_name,
        quantity=expense_data.quantity,
        price_per_unit=expense_data.price_per_unit,
        bill_number=expense_data.bill_number,
        bill_name=expense_data.bill_name,
        bill_type=expense_data.bill_type,
    )

    try:
        expense = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_error(exc)

    return expense_to_response(expense)
