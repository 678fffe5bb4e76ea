"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Import database and ALL models FIRST so metadata is complete
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
from app.database import Base, engine, create_tables
from app.models import User, CreditTransaction, Company, Contact  # noqa: F401
from app.config import settings

from app.api import auth
from app.routers import (
    credit_routes,
    contact_routes,
    company_routes,
    enrichment_routes,
    verification_routes,
    crm_routes,
    message_routes,
)

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Credit-Metered CRM API",
    description="Contacts, companies, metered enrichment, email verification and CRM sync",
    version="1.0.0",
    redirect_slashes=False
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# ROUTER REGISTRATION
# ============================================

app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])

app.include_router(credit_routes.router)
app.include_router(contact_routes.router)
app.include_router(company_routes.router)
app.include_router(enrichment_routes.router)
app.include_router(verification_routes.router)
app.include_router(crm_routes.router)
app.include_router(message_routes.router)

# ============================================
# HEALTH & ROOT ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "registered_tables": len(Base.metadata.tables),
        "tables": list(Base.metadata.tables.keys()),
        "features": [
            "authentication",
            "credit_ledger",
            "contact_company_reconciliation",
            "enrichment",
            "email_verification",
            "crm_sync",
            "ai_message_writer",
        ]
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Credit-Metered CRM API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting Credit-Metered CRM API...")

    if settings.ENVIRONMENT == "development":
        await create_tables()

    logger.info("=" * 50)
    logger.info(f"Registered {len(Base.metadata.tables)} SQLAlchemy tables:")
    for table_name in sorted(Base.metadata.tables.keys()):
        logger.info(f"  ✓ {table_name}")
    logger.info("=" * 50)
    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Credit-Metered CRM API...")
    await engine.dispose()
