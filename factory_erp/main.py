from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.exc import SQLAlchemyError
import logging

# Import database components
from factory_erp.database.database import engine, Base, SessionLocal

# Import middleware
from factory_erp.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from factory_erp.modules.invoices.router import router as invoices_router
from factory_erp.modules.taxes.router import hsn_router

# Import models for table creation
import factory_erp.modules.customers.models
import factory_erp.modules.taxes.models
import factory_erp.modules.invoices.models

from factory_erp.modules.taxes.service import HSNService
from factory_erp.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Factory ERP - Invoicing API",
    description="GST tax invoices, sequential numbering, payments and invoice lifecycle",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(invoices_router)
app.include_router(hsn_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "Factory ERP invoicing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Factory ERP invoicing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Invoice numbers: {settings.INVOICE_NUMBER_PREFIX}YYYYMMNNNN")

    # Default HSN codes for a fresh development database
    if settings.ENVIRONMENT == "development":
        db = SessionLocal()
        try:
            HSNService(db).seed_defaults()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"HSN seed skipped or failed: {e}")
        finally:
            db.close()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Factory ERP invoicing API shutting down...")
