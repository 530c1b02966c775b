"""
Daily Activity Routes
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
import uuid

from database import get_postgres_session, DailyActivity, User, UserRole
from routes.auth_routes import get_current_user_pg

# Create router
activities_router = APIRouter(prefix="/api", tags=["Daily Activities"])


class ActivityCreate(BaseModel):
    description: str
    date: Optional[datetime] = None


def activity_to_response(activity: DailyActivity) -> dict:
    return {
        "id": activity.id,
        "supervisor_id": activity.supervisor_id,
        "supervisor_name": activity.supervisor_name,
        "date": activity.date.isoformat() if activity.date else None,
        "description": activity.description,
        "created_at": activity.created_at.isoformat() if activity.created_at else None
    }


@activities_router.get("/activities")
async def get_activities(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get activity log - all for the manager, own for a supervisor"""
    query = select(DailyActivity)
    if current_user.role != UserRole.MANAGER:
        query = query.where(DailyActivity.supervisor_id == current_user.id)
    query = query.order_by(desc(DailyActivity.date))

    result = await session.execute(query)
    return [activity_to_response(a) for a in result.scalars().all()]


@activities_router.post("/activities", status_code=201)
async def create_activity(
    activity_data: ActivityCreate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Log a daily activity - supervisor only"""
    if current_user.role != UserRole.SUPERVISOR:
        raise HTTPException(status_code=403, detail="Only supervisors can log activities")

    description = activity_data.description.strip()
    if not description:
        raise HTTPException(status_code=400, detail="Description is required")

    now = datetime.utcnow()
    activity = DailyActivity(
        id=str(uuid.uuid4()),
        supervisor_id=current_user.id,
        supervisor_name=current_user.username,
        date=activity_data.date or now,
        description=description,
        created_at=now
    )
    session.add(activity)
    await session.commit()

    return activity_to_response(activity)


@activities_router.delete("/activities/{activity_id}")
async def delete_activity(
    activity_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete an activity entry - author only"""
    result = await session.execute(select(DailyActivity).where(DailyActivity.id == activity_id))
    activity = result.scalar_one_or_none()

    if not activity:
        raise HTTPException(status_code=404, detail="Not found")

    if activity.supervisor_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized")

    await session.delete(activity)
    await session.commit()

    return {"message": "Removed"}
