"""
Database package for PostgreSQL integration
"""
from .config import postgres_settings
from .connection import (
    Base,
    get_engine,
    get_session_maker,
    init_postgres_db,
    get_postgres_session,
    close_postgres_db
)
from .models import (
    UserRole,
    ApprovalStatus,
    SiteStatus,
    User,
    Site,
    Material,
    Allocation,
    Expense,
    DailyActivity,
    Attendance,
    AuditLog
)

__all__ = [
    # Config
    "postgres_settings",
    # Connection
    "Base",
    "get_engine",
    "get_session_maker",
    "init_postgres_db",
    "get_postgres_session",
    "close_postgres_db",
    # Enums
    "UserRole",
    "ApprovalStatus",
    "SiteStatus",
    # Models
    "User",
    "Site",
    "Material",
    "Allocation",
    "Expense",
    "DailyActivity",
    "Attendance",
    "AuditLog"
]
