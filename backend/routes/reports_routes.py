"""
Reports Routes - manager dashboard totals
"""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
from typing import Optional
from datetime import datetime

from database import get_postgres_session, Expense, User, UserRole, ApprovalStatus
from app.expenses.domain.calculations import sum_amounts
from app.expenses.infrastructure.sqlalchemy_repository import expense_from_row
from app.expenses.presentation.excel_export import XLSX_MEDIA_TYPE, approved_expenses_workbook
from app.expenses.presentation.response_mapper import expense_to_response
from routes.auth_routes import get_current_user_pg, require_manager
from routes.allocations_routes import spending_totals, supervisor_totals
from routes.sites_routes import get_site_or_404

# Create router
reports_router = APIRouter(prefix="/api/reports", tags=["Reports"])


async def approved_expenses(session: AsyncSession, site_id: Optional[str] = None):
    query = select(Expense).where(Expense.status == ApprovalStatus.APPROVED.value)
    if site_id is not None:
        query = query.where(Expense.site_id == site_id)
    result = await session.execute(query.order_by(desc(Expense.date)))
    return [expense_from_row(row) for row in result.scalars().all()]


def xlsx_response(sheet_title: str, expenses, filename_stem: str) -> StreamingResponse:
    output = approved_expenses_workbook(sheet_title, expenses)
    filename = f"{filename_stem}_{datetime.now().strftime('%Y%m%d')}.xlsx"

    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@reports_router.get("/summary")
async def get_summary(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Allocated, approved and pending totals per supervisor and overall"""
    require_manager(current_user)

    result = await session.execute(
        select(User).where(User.role == UserRole.SUPERVISOR).order_by(User.username)
    )
    supervisors = []
    for supervisor in result.scalars().all():
        totals = await supervisor_totals(session, supervisor.id)
        totals["supervisor_name"] = supervisor.username
        supervisors.append(totals)

    # Overall figures come from the tables so manager-recorded expenses count too
    overall = await spending_totals(session)

    return {
        "total_allocated": overall["allocated_total"],
        "total_approved_spent": overall["approved_spent"],
        "total_pending": overall["pending_total"],
        "balance": overall["balance"],
        "supervisors": supervisors
    }


@reports_router.get("/expenses")
async def get_approved_expenses(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approved expenses across all sites and their total"""
    require_manager(current_user)

    expenses = await approved_expenses(session)

    return {
        "total_amount": sum_amounts(e.total_amount for e in expenses),
        "expenses": [expense_to_response(e) for e in expenses]
    }


@reports_router.get("/expenses/export")
async def export_approved_expenses(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approved expenses across all sites as an Excel workbook"""
    require_manager(current_user)

    expenses = await approved_expenses(session)
    return xlsx_response("All Sites", expenses, "expenses_all_sites")


@reports_router.get("/sites/{site_id}/expenses")
async def get_site_expenses(
    site_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approved expenses of a site and their total"""
    require_manager(current_user)

    site = await get_site_or_404(session, site_id)
    expenses = await approved_expenses(session, site_id)

    return {
        "site_id": site.id,
        "site_name": site.name,
        "total_amount": sum_amounts(e.total_amount for e in expenses),
        "expenses": [expense_to_response(e) for e in expenses]
    }


@reports_router.get("/sites/{site_id}/expenses/export")
async def export_site_expenses(
    site_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approved expenses of a site as an Excel workbook"""
    require_manager(current_user)

    site = await get_site_or_404(session, site_id)
    expenses = await approved_expenses(session, site_id)
    return xlsx_response(site.name, expenses, f"expenses_{site.id}")
