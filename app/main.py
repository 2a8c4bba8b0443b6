from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from app.database.database import sync_engine, Base, SessionLocal

# Import middleware
from app.common.middleware import ActorContextMiddleware, SecurityHeadersMiddleware
from app.common.exceptions import BillingError

# Import routers
from app.modules.audit.router import audit_router
from app.modules.billing.router import billing_router
from app.modules.bills.router import bills_router, debit_notes_router
from app.modules.contacts.router import router as contacts_router
from app.modules.fiscal.router import fiscal_router
from app.modules.inventory.router import stock_router, movements_router
from app.modules.invoices.router import router as invoices_router
from app.modules.pricing.router import pricing_router
from app.modules.products.router import product_router
from app.modules.taxes.router import taxes_router

# Import models for table creation
import app.modules.audit.models
import app.modules.billing.models
import app.modules.bills.models
import app.modules.contacts.models
import app.modules.fiscal.models
import app.modules.invoices.models
import app.modules.pricing.models
import app.modules.products.models

from app.modules.billing.service import PaymentTermService
from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Ally Billing API",
    description="Ciclo de facturación, cobro y pago con facturación electrónica para Costa Rica",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(ActorContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Include routers
app.include_router(contacts_router, tags=["Contacts"])
app.include_router(product_router)
app.include_router(stock_router)
app.include_router(movements_router)
app.include_router(pricing_router)
app.include_router(taxes_router)
app.include_router(billing_router)
app.include_router(invoices_router)
app.include_router(bills_router)
app.include_router(debit_notes_router)
app.include_router(fiscal_router)
app.include_router(audit_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT in ("development", "test"):
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Ally Billing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Ally Billing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Hacienda enabled: {settings.HACIENDA_ENABLED}")

    db = SessionLocal()
    try:
        PaymentTermService(db).ensure_defaults()
    finally:
        db.close()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Ally Billing API shutting down...")
