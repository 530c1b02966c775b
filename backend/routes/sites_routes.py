"""
Sites Routes
"""
from fastapi import APIRouter, HTTPException, Depends, BackgroundTasks
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, desc, update
import uuid
import logging

from database import get_postgres_session, Site, SiteStatus, Expense, User, ApprovalStatus
from app.expenses.application.ports import ExpenseSheetSink, SheetSyncError
from routes.auth_routes import get_current_user_pg, require_manager
from routes.expenses_routes import get_expense_sheet_sink

logger = logging.getLogger(__name__)

# Create router
sites_router = APIRouter(prefix="/api", tags=["Sites"])


# ==================== PYDANTIC MODELS ====================

class SiteCreate(BaseModel):
    name: str
    location: str


class SiteUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None


# ==================== HELPERS ====================

def site_to_response(site: Site) -> dict:
    return {
        "id": site.id,
        "name": site.name,
        "location": site.location,
        "status": site.status,
        "created_at": site.created_at.isoformat() if site.created_at else None,
        "updated_at": site.updated_at.isoformat() if site.updated_at else None
    }


async def create_site_sheet(sink: ExpenseSheetSink, site_name: str) -> None:
    """Best effort: a missing tab is created again on the first approval."""
    try:
        await sink.ensure_site_tab(site_name)
    except SheetSyncError as e:
        logger.warning(f"Error creating site sheet for {site_name}: {e}")


async def get_site_or_404(session: AsyncSession, site_id: str) -> Site:
    result = await session.execute(select(Site).where(Site.id == site_id))
    site = result.scalar_one_or_none()
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


# ==================== SITES ROUTES ====================

@sites_router.get("/sites")
async def get_sites(
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get all sites"""
    query = select(Site)
    if status:
        query = query.where(Site.status == status)
    query = query.order_by(desc(Site.created_at))

    result = await session.execute(query)
    return [site_to_response(s) for s in result.scalars().all()]


@sites_router.get("/sites/{site_id}")
async def get_site(
    site_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get a single site"""
    return site_to_response(await get_site_or_404(session, site_id))


@sites_router.post("/sites", status_code=201)
async def create_site(
    site_data: SiteCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session),
    sheet_sink: ExpenseSheetSink = Depends(get_expense_sheet_sink)
):
    """Create a site - manager only"""
    require_manager(current_user)

    name = site_data.name.strip()
    location = site_data.location.strip()
    if not name or not location:
        raise HTTPException(status_code=400, detail="Site name and location are required")

    now = datetime.utcnow()
    site = Site(
        id=str(uuid.uuid4()),
        name=name,
        location=location,
        status=SiteStatus.ACTIVE.value,
        created_at=now,
        updated_at=now
    )
    session.add(site)
    await session.commit()

    background_tasks.add_task(create_site_sheet, sheet_sink, site.name)

    return site_to_response(site)


@sites_router.put("/sites/{site_id}")
async def update_site(
    site_id: str,
    update_data: SiteUpdate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a site - manager only"""
    require_manager(current_user)

    site = await get_site_or_404(session, site_id)

    if update_data.status is not None:
        if update_data.status not in (SiteStatus.ACTIVE.value, SiteStatus.INACTIVE.value):
            raise HTTPException(status_code=400, detail="Invalid site status")
        site.status = update_data.status

    if update_data.location is not None and update_data.location.strip():
        site.location = update_data.location.strip()

    if update_data.name is not None and update_data.name.strip() and update_data.name.strip() != site.name:
        site.name = update_data.name.strip()
        # Open expenses follow the new tab name; approved rows stay as exported
        await session.execute(
            update(Expense)
            .where(Expense.site_id == site_id, Expense.status != ApprovalStatus.APPROVED.value)
            .values(site_name=site.name)
        )

    site.updated_at = datetime.utcnow()
    await session.commit()

    return site_to_response(site)


@sites_router.delete("/sites/{site_id}")
async def delete_site(
    site_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a site - manager only"""
    require_manager(current_user)

    expense_result = await session.execute(
        select(func.count()).select_from(Expense).where(Expense.site_id == site_id)
    )
    expense_count = expense_result.scalar() or 0

    if expense_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete site with {expense_count} recorded expenses"
        )

    site = await get_site_or_404(session, site_id)
    await session.delete(site)
    await session.commit()

    return {"message": "Site removed"}
