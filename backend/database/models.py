"""
PostgreSQL Database Models - SQLAlchemy ORM
All tables for the Site Expense Tracker
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String, Text, DateTime, Boolean, Float, ForeignKey, Index
)
from sqlalchemy.orm import Mapped, mapped_column
import uuid as uuid_lib
import enum

from .connection import Base


# ==================== ENUMS ====================

class UserRole(str, enum.Enum):
    MANAGER = "manager"
    SUPERVISOR = "supervisor"


class ApprovalStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class SiteStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def new_id() -> str:
    return str(uuid_lib.uuid4())


# ==================== USER MODEL ====================

class User(Base):
    """User table - managers and supervisors"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=UserRole.SUPERVISOR.value, index=True)
    phone: Mapped[str] = mapped_column(String(50), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_users_role_created_at', 'role', 'created_at'),
    )


# ==================== SITE MODEL ====================

class Site(Base):
    """Construction sites"""
    __tablename__ = "sites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SiteStatus.ACTIVE.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ==================== MATERIAL MODEL ====================

class Material(Base):
    """Material catalog with base prices"""
    __tablename__ = "materials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)  # kg, bags, liters
    base_price: Mapped[float] = mapped_column(Float, nullable=False)
    shop_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ==================== ALLOCATION MODEL ====================

class Allocation(Base):
    """Fund grants from the manager to a supervisor"""
    __tablename__ = "allocations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supervisor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    supervisor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_allocations_supervisor_date', 'supervisor_id', 'date'),
    )


# ==================== EXPENSE MODEL ====================

class Expense(Base):
    """Material expense submitted by a supervisor against a site"""
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supervisor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    supervisor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    site_id: Mapped[str] = mapped_column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    site_name: Mapped[str] = mapped_column(String(255), nullable=False)
    material_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("materials.id", ondelete="SET NULL"), nullable=True)
    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    price_per_unit: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    bill_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bill_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # shop name
    bill_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=ApprovalStatus.PENDING.value, index=True)
    rejection_reason: Mapped[str] = mapped_column(Text, default="")
    is_price_changed: Mapped[bool] = mapped_column(Boolean, default=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_expenses_status_created_at', 'status', 'created_at'),
        Index('idx_expenses_supervisor_status', 'supervisor_id', 'status'),
        Index('idx_expenses_site_status', 'site_id', 'status'),
    )


# ==================== DAILY ACTIVITY MODEL ====================

class DailyActivity(Base):
    """Daily site activity log entries"""
    __tablename__ = "daily_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supervisor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    supervisor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ==================== ATTENDANCE MODEL ====================

class Attendance(Base):
    """Attendance / wage entries"""
    __tablename__ = "attendance"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    supervisor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    supervisor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    number_of_days: Mapped[float] = mapped_column(Float, nullable=False)
    wage_per_day: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ApprovalStatus.PENDING.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ==================== AUDIT LOG MODEL ====================

class AuditLog(Base):
    """Audit logs - tracks approval decisions and other system actions"""
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    changes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_role: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_entity_timestamp', 'entity_type', 'timestamp'),
    )
