"""
Auth Routes - Login, first-manager setup and supervisor management
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional
from datetime import datetime, timezone, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
import uuid
import logging

from database import (
    get_postgres_session, User, UserRole, Allocation, Expense, Attendance, DailyActivity, AuditLog
)
from settings import app_settings

logger = logging.getLogger(__name__)

# JWT Settings
ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer()

# Create router
auth_router = APIRouter(prefix="/api", tags=["Auth & Users"])


# ==================== PYDANTIC MODELS ====================

class UserLogin(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: str
    username: str
    role: str
    phone: str = ""
    is_active: bool = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class SetupFirstManager(BaseModel):
    username: str
    password: str
    phone: Optional[str] = ""


class UserRegister(BaseModel):
    username: str
    password: str
    role: Optional[str] = UserRole.SUPERVISOR.value
    phone: Optional[str] = ""


class UserUpdate(BaseModel):
    password: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ==================== HELPER FUNCTIONS ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=app_settings.access_token_expire_days)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, app_settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the user id carried by the token, or None when it is invalid."""
    try:
        payload = jwt.decode(token, app_settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def check_password_length(password: str) -> None:
    if len(password) < app_settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {app_settings.min_password_length} characters"
        )


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        phone=user.phone or "",
        is_active=user.is_active,
    )


async def get_current_user_pg(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get current user from the bearer token"""
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account is disabled. Contact the manager")

    return user


def require_manager(user) -> None:
    if user.role != UserRole.MANAGER:
        raise HTTPException(status_code=403, detail="Not authorized as a manager")


# ==================== HEALTH & SETUP ROUTES ====================

@auth_router.get("/health")
async def pg_health_check(session: AsyncSession = Depends(get_postgres_session)):
    """Health check for PostgreSQL connection"""
    try:
        result = await session.execute(select(func.count()).select_from(User))
        count = result.scalar()
        return {"status": "healthy", "database": "postgresql", "users_count": count}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database error: {str(e)}")


async def count_managers(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.MANAGER)
    )
    return result.scalar() or 0


@auth_router.get("/setup/check")
async def check_setup_required(session: AsyncSession = Depends(get_postgres_session)):
    """Check if the first manager still has to be created"""
    return {"setup_required": await count_managers(session) == 0}


@auth_router.post("/setup/first-manager", response_model=TokenResponse)
async def create_first_manager(
    manager_data: SetupFirstManager,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create the first manager - only available while no manager exists"""
    if await count_managers(session) > 0:
        raise HTTPException(status_code=400, detail="System is already set up")

    result = await session.execute(select(User).where(User.username == manager_data.username))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="User already exists")

    check_password_length(manager_data.password)

    new_user = User(
        id=str(uuid.uuid4()),
        username=manager_data.username,
        password=get_password_hash(manager_data.password),
        role=UserRole.MANAGER.value,
        phone=manager_data.phone or "",
        is_active=True,
    )
    session.add(new_user)
    await session.commit()

    logger.info(f"First manager created: {new_user.username}")

    return TokenResponse(
        access_token=create_access_token({"sub": new_user.id}),
        user=to_user_response(new_user)
    )


# ==================== AUTH ROUTES ====================

@auth_router.post("/auth/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Login user"""
    result = await session.execute(select(User).where(User.username == credentials.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account is disabled. Contact the manager")

    return TokenResponse(
        access_token=create_access_token({"sub": user.id}),
        user=to_user_response(user)
    )


@auth_router.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user_pg)):
    """Get current user info"""
    return to_user_response(current_user)


@auth_router.post("/auth/change-password")
async def change_password(
    password_data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Change current user's password"""
    if not verify_password(password_data.current_password, current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    check_password_length(password_data.new_password)

    current_user.password = get_password_hash(password_data.new_password)
    await session.commit()

    return {"message": "Password changed"}


@auth_router.post("/auth/register", status_code=201)
async def register_user(
    user_data: UserRegister,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Register a new user - manager only"""
    require_manager(current_user)

    role = user_data.role or UserRole.SUPERVISOR.value
    if role not in (UserRole.MANAGER.value, UserRole.SUPERVISOR.value):
        raise HTTPException(status_code=400, detail="Invalid role")

    result = await session.execute(select(User).where(User.username == user_data.username))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="User already exists")

    check_password_length(user_data.password)

    new_user = User(
        id=str(uuid.uuid4()),
        username=user_data.username,
        password=get_password_hash(user_data.password),
        role=role,
        phone=user_data.phone or "",
        is_active=True,
    )
    session.add(new_user)
    await session.commit()

    logger.info(f"User {new_user.username} ({role}) registered by {current_user.username}")

    return to_user_response(new_user)


# ==================== USER MANAGEMENT ROUTES ====================

@auth_router.get("/users/supervisors")
async def get_supervisors(
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Get all supervisors - manager only"""
    require_manager(current_user)

    result = await session.execute(
        select(User).where(User.role == UserRole.SUPERVISOR).order_by(User.username)
    )
    return [to_user_response(u) for u in result.scalars().all()]


@auth_router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Update a user's password, phone or active flag - manager only"""
    require_manager(current_user)

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user_data.password:
        check_password_length(user_data.password)
        user.password = get_password_hash(user_data.password)

    if user_data.phone is not None:
        user.phone = user_data.phone

    if user_data.is_active is not None:
        if user.id == current_user.id and not user_data.is_active:
            raise HTTPException(status_code=400, detail="You cannot disable your own account")
        user.is_active = user_data.is_active

    await session.commit()

    return {"message": "User updated"}


@auth_router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Delete a user - manager only, refused while the user owns records"""
    require_manager(current_user)

    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    ownership = [
        (Expense, Expense.supervisor_id == user_id),
        (Allocation, (Allocation.supervisor_id == user_id) | (Allocation.created_by == user_id)),
        (Attendance, Attendance.supervisor_id == user_id),
        (DailyActivity, DailyActivity.supervisor_id == user_id),
        (AuditLog, AuditLog.user_id == user_id),
    ]
    for model, condition in ownership:
        owned = await session.execute(
            select(func.count()).select_from(model).where(condition)
        )
        if owned.scalar():
            raise HTTPException(
                status_code=400,
                detail="User has recorded entries; deactivate the account instead"
            )

    await session.delete(user)
    await session.commit()

    return {"message": "User removed"}
