"""
Haulage Ledger - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from haulage.core.config import settings
from haulage.core.logging import setup_logging, get_logger
from haulage.core.middleware import setup_middleware, setup_exception_handlers
from haulage.api.routes import router as api_router
from haulage.db.database import engine, Base

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {"name": "Reports", "description": "Estimated revenue and rate list diagnostics."},
    {"name": "Invoices", "description": "Issuing invoices, balances and invoice payments."},
    {"name": "Payments", "description": "Editing and deleting payments."},
    {"name": "Statements", "description": "Statement of account snapshots and Excel export."},
    {"name": "Fuel", "description": "Diesel purchase records."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Back office for a trucking operation: trips, rates, invoices, payments and statements.",
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

# Local front end during development only
if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get("/health", summary="Liveness check", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
