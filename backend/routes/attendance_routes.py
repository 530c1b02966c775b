"""
Attendance Routes - labour days and wages
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
import uuid
import logging

from database import get_postgres_session, Attendance, User, UserRole, ApprovalStatus
from app.expenses.domain.calculations import wage_total
from routes.auth_routes import get_current_user_pg, require_manager

logger = logging.getLogger(__name__)

# Create router
attendance_router = APIRouter(prefix="/api", tags=["Attendance"])


class AttendanceCreate(BaseModel):
    number_of_days: float
    wage_per_day: float
    date: Optional[datetime] = None


class AttendanceStatusUpdate(BaseModel):
    status: str


def attendance_to_response(entry: Attendance) -> dict:
    return {
        "id": entry.id,
        "supervisor_id": entry.supervisor_id,
        "supervisor_name": entry.supervisor_name,
        "date": entry.date.isoformat() if entry.date else None,
        "number_of_days": entry.number_of_days,
        "wage_per_day": entry.wage_per_day,
        "total_amount": entry.total_amount,
        "status": entry.status,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None
    }


@attendance_router.get("/attendance")
async def get_attendance(
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get attendance entries - all for the manager, own for a supervisor"""
    query = select(Attendance)
    if current_user.role != UserRole.MANAGER:
        query = query.where(Attendance.supervisor_id == current_user.id)
    if status:
        query = query.where(Attendance.status == status)
    query = query.order_by(desc(Attendance.date))

    result = await session.execute(query)
    return [attendance_to_response(a) for a in result.scalars().all()]


@attendance_router.post("/attendance", status_code=201)
async def submit_attendance(
    attendance_data: AttendanceCreate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Submit labour days and wage - supervisor only"""
    if current_user.role != UserRole.SUPERVISOR:
        raise HTTPException(status_code=403, detail="Only supervisors can submit attendance")

    if attendance_data.number_of_days <= 0 or attendance_data.wage_per_day <= 0:
        raise HTTPException(status_code=400, detail="Days and wage per day must be greater than zero")

    now = datetime.utcnow()
    entry = Attendance(
        id=str(uuid.uuid4()),
        supervisor_id=current_user.id,
        supervisor_name=current_user.username,
        date=attendance_data.date or now,
        number_of_days=attendance_data.number_of_days,
        wage_per_day=attendance_data.wage_per_day,
        total_amount=wage_total(attendance_data.number_of_days, attendance_data.wage_per_day),
        status=ApprovalStatus.PENDING.value,
        created_at=now,
        updated_at=now
    )
    session.add(entry)
    await session.commit()

    return attendance_to_response(entry)


@attendance_router.put("/attendance/{attendance_id}/status")
async def change_attendance_status(
    attendance_id: str,
    status_data: AttendanceStatusUpdate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approve or reject an attendance entry - manager only"""
    require_manager(current_user)

    if status_data.status not in [s.value for s in ApprovalStatus]:
        raise HTTPException(status_code=400, detail="Invalid status")

    result = await session.execute(select(Attendance).where(Attendance.id == attendance_id))
    entry = result.scalar_one_or_none()

    if not entry:
        raise HTTPException(status_code=404, detail="Not found")

    entry.status = status_data.status
    entry.updated_at = datetime.utcnow()
    await session.commit()

    logger.info(f"Attendance {attendance_id} set to {entry.status} by {current_user.username}")

    return attendance_to_response(entry)
