"""
Site Expense Tracker - construction site funds, expenses and workforce
PostgreSQL Backend
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from pathlib import Path
import logging

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from settings import app_settings  # noqa: E402

# ==================== Logging Configuration ====================
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(
    title="Site Expense Tracker",
    description="Construction site expense and workforce tracking - PostgreSQL Backend",
    version="1.0.0"
)


# Health check endpoint at root level (for liveness/readiness checks)
@app.get("/health")
async def root_health_check():
    """Health check endpoint for liveness/readiness checks"""
    return {"status": "healthy", "database": "PostgreSQL"}

# ==================== Routes ====================
from routes.auth_routes import auth_router  # noqa: E402
from routes.sites_routes import sites_router  # noqa: E402
from routes.materials_routes import materials_router  # noqa: E402
from routes.allocations_routes import allocations_router  # noqa: E402
from routes.expenses_routes import expenses_router  # noqa: E402
from routes.activities_routes import activities_router  # noqa: E402
from routes.attendance_routes import attendance_router  # noqa: E402
from routes.reports_routes import reports_router  # noqa: E402

app.include_router(auth_router)
app.include_router(sites_router)
app.include_router(materials_router)
app.include_router(allocations_router)
app.include_router(expenses_router)
app.include_router(activities_router)
app.include_router(attendance_router)
app.include_router(reports_router)

# ==================== CORS Configuration ====================
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=app_settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Startup & Shutdown Events ====================
@app.on_event("startup")
async def startup_db_client():
    """Initialize PostgreSQL database on startup"""
    logger.info("Starting Site Expense Tracker...")

    from database import init_postgres_db
    await init_postgres_db()

    logger.info("PostgreSQL database initialized successfully")


@app.on_event("shutdown")
async def shutdown_db_client():
    """Close database connections on shutdown"""
    logger.info("Shutting down...")

    from database import close_postgres_db
    await close_postgres_db()

    logger.info("Database connections closed")
