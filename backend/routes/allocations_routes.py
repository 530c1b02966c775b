"""
Allocations Routes - fund grants from the manager to supervisors
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, desc
import uuid
import logging

from database import (
    get_postgres_session, Allocation, Expense, User, UserRole, ApprovalStatus
)
from app.expenses.domain.calculations import balance, sum_amounts
from routes.auth_routes import get_current_user_pg, require_manager

logger = logging.getLogger(__name__)

# Create router
allocations_router = APIRouter(prefix="/api", tags=["Allocations"])


# ==================== PYDANTIC MODELS ====================

class AllocationCreate(BaseModel):
    supervisor_id: str
    amount: float
    date: Optional[datetime] = None


# ==================== HELPERS ====================

def allocation_to_response(allocation: Allocation) -> dict:
    return {
        "id": allocation.id,
        "supervisor_id": allocation.supervisor_id,
        "supervisor_name": allocation.supervisor_name,
        "amount": allocation.amount,
        "date": allocation.date.isoformat() if allocation.date else None,
        "created_by": allocation.created_by,
        "created_at": allocation.created_at.isoformat() if allocation.created_at else None
    }


async def spending_totals(session: AsyncSession, supervisor_id: Optional[str] = None) -> dict:
    """Allocated, approved and pending totals plus the remaining balance.

    Without a supervisor_id the totals cover every allocation and expense,
    including expenses recorded by managers.
    """
    allocated_query = select(func.coalesce(func.sum(Allocation.amount), 0))
    spent_query = select(Expense.status, func.coalesce(func.sum(Expense.total_amount), 0))
    if supervisor_id is not None:
        allocated_query = allocated_query.where(Allocation.supervisor_id == supervisor_id)
        spent_query = spent_query.where(Expense.supervisor_id == supervisor_id)

    allocated_result = await session.execute(allocated_query)
    allocated_total = float(allocated_result.scalar() or 0)

    spent_result = await session.execute(spent_query.group_by(Expense.status))
    spent = {status: float(total) for status, total in spent_result.all()}
    approved_spent = sum_amounts([spent.get(ApprovalStatus.APPROVED.value, 0.0)])
    pending_total = sum_amounts([spent.get(ApprovalStatus.PENDING.value, 0.0)])

    return {
        "allocated_total": sum_amounts([allocated_total]),
        "approved_spent": approved_spent,
        "pending_total": pending_total,
        "balance": balance(allocated_total, approved_spent)
    }


async def supervisor_totals(session: AsyncSession, supervisor_id: str) -> dict:
    return {"supervisor_id": supervisor_id, **await spending_totals(session, supervisor_id)}


# ==================== ALLOCATIONS ROUTES ====================

@allocations_router.get("/allocations")
async def get_allocations(
    supervisor_id: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get allocations - all for the manager, own for a supervisor"""
    query = select(Allocation)
    if current_user.role == UserRole.MANAGER:
        if supervisor_id:
            query = query.where(Allocation.supervisor_id == supervisor_id)
    else:
        query = query.where(Allocation.supervisor_id == current_user.id)
    query = query.order_by(desc(Allocation.date))

    result = await session.execute(query)
    return [allocation_to_response(a) for a in result.scalars().all()]


@allocations_router.post("/allocations", status_code=201)
async def create_allocation(
    allocation_data: AllocationCreate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Allocate money to a supervisor - manager only"""
    require_manager(current_user)

    if allocation_data.amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than zero")

    result = await session.execute(select(User).where(User.id == allocation_data.supervisor_id))
    supervisor = result.scalar_one_or_none()

    if not supervisor or supervisor.role != UserRole.SUPERVISOR:
        raise HTTPException(status_code=404, detail="Supervisor not found")

    now = datetime.utcnow()
    allocation = Allocation(
        id=str(uuid.uuid4()),
        supervisor_id=supervisor.id,
        supervisor_name=supervisor.username,
        amount=allocation_data.amount,
        date=allocation_data.date or now,
        created_by=current_user.id,
        created_at=now
    )
    session.add(allocation)
    await session.commit()

    logger.info(f"Allocated {allocation.amount} to {supervisor.username}")

    return allocation_to_response(allocation)


@allocations_router.get("/allocations/balance")
async def get_balance(
    supervisor_id: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Balance = allocated - approved spent. Supervisors get their own."""
    if current_user.role == UserRole.MANAGER:
        if not supervisor_id:
            raise HTTPException(status_code=400, detail="supervisor_id is required")
    else:
        if supervisor_id and supervisor_id != current_user.id:
            raise HTTPException(status_code=403, detail="Not authorized")
        supervisor_id = current_user.id

    return await supervisor_totals(session, supervisor_id)
