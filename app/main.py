from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.company.router import company_router
from app.modules.clients.router import router as clients_router
from app.modules.projects.router import router as projects_router
from app.modules.time_tracking.router import router as time_tracking_router
from app.modules.expenses.router import router as expenses_router
from app.modules.invoices.router import router as invoices_router, public_router as public_invoices_router
from app.modules.payments.router import router as payments_router, public_router as public_payments_router
from app.modules.quotations.router import router as quotations_router
from app.modules.recurring.router import router as recurring_router
from app.modules.client_portal.router import router as client_access_router, portal_router
from app.modules.settings.router import router as settings_router
from app.modules.notifications.router import router as notifications_router
from app.modules.email.router import router as email_router
from app.modules.reports.router import router as reports_router

# Import models for table creation
import app.database.models  # noqa: F401

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="BillSense API",
    description="Time tracking, invoicing and payments for freelancers and small agencies",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(company_router, prefix="/company", tags=["Companies"])
app.include_router(clients_router)
app.include_router(projects_router)
app.include_router(time_tracking_router)
app.include_router(expenses_router)
app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(quotations_router)
app.include_router(recurring_router)
app.include_router(client_access_router)
app.include_router(settings_router)
app.include_router(notifications_router)
app.include_router(email_router)
app.include_router(reports_router)

# No staff authentication below: payment token or client token
app.include_router(public_invoices_router)
app.include_router(public_payments_router)
app.include_router(portal_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "BillSense API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("BillSense API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("BillSense API shutting down...")
