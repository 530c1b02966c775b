"""
Materials Routes - material catalog with base prices
"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import uuid

from database import get_postgres_session, Material, User
from routes.auth_routes import get_current_user_pg, require_manager

# Create router
materials_router = APIRouter(prefix="/api", tags=["Materials"])


# ==================== PYDANTIC MODELS ====================

class MaterialCreate(BaseModel):
    name: str
    unit: str
    base_price: float
    shop_name: Optional[str] = None


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    base_price: Optional[float] = None
    shop_name: Optional[str] = None


def material_to_response(material: Material) -> dict:
    return {
        "id": material.id,
        "name": material.name,
        "unit": material.unit,
        "base_price": material.base_price,
        "shop_name": material.shop_name,
        "created_at": material.created_at.isoformat() if material.created_at else None,
        "updated_at": material.updated_at.isoformat() if material.updated_at else None
    }


# ==================== MATERIALS ROUTES ====================

@materials_router.get("/materials")
async def get_materials(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get the material catalog"""
    result = await session.execute(select(Material).order_by(Material.name))
    return [material_to_response(m) for m in result.scalars().all()]


@materials_router.post("/materials", status_code=201)
async def create_material(
    material_data: MaterialCreate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Add a material to the catalog - manager only"""
    require_manager(current_user)

    if not material_data.name.strip() or not material_data.unit.strip():
        raise HTTPException(status_code=400, detail="Material name and unit are required")
    if material_data.base_price < 0:
        raise HTTPException(status_code=400, detail="Base price cannot be negative")

    now = datetime.utcnow()
    material = Material(
        id=str(uuid.uuid4()),
        name=material_data.name.strip(),
        unit=material_data.unit.strip(),
        base_price=material_data.base_price,
        shop_name=material_data.shop_name,
        created_at=now,
        updated_at=now
    )
    session.add(material)
    await session.commit()

    return material_to_response(material)


@materials_router.put("/materials/{material_id}")
async def update_material(
    material_id: str,
    update_data: MaterialUpdate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a catalog material - manager only"""
    require_manager(current_user)

    result = await session.execute(select(Material).where(Material.id == material_id))
    material = result.scalar_one_or_none()

    if not material:
        raise HTTPException(status_code=404, detail="Material not found")

    if update_data.name is not None and update_data.name.strip():
        material.name = update_data.name.strip()
    if update_data.unit is not None and update_data.unit.strip():
        material.unit = update_data.unit.strip()
    if update_data.base_price is not None:
        if update_data.base_price < 0:
            raise HTTPException(status_code=400, detail="Base price cannot be negative")
        material.base_price = update_data.base_price
    if update_data.shop_name is not None:
        material.shop_name = update_data.shop_name

    material.updated_at = datetime.utcnow()
    await session.commit()

    return material_to_response(material)


@materials_router.delete("/materials/{material_id}")
async def delete_material(
    material_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Remove a catalog material - manager only; expenses keep their material name"""
    require_manager(current_user)

    result = await session.execute(select(Material).where(Material.id == material_id))
    material = result.scalar_one_or_none()

    if not material:
        raise HTTPException(status_code=404, detail="Material not found")

    await session.delete(material)
    await session.commit()

    return {"message": "Material removed"}
