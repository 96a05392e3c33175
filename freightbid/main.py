import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from freightbid.api.v1.router import api_router
from freightbid.config import settings
from freightbid.core.exceptions import FreightBidError, ServerFault
from freightbid.core.reference_data import get_reference_data
from freightbid.database import async_session_factory, init_db
from freightbid.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging
    - Ensure database tables exist
    - Load pincode reference tables (once per process)
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()
    reference = get_reference_data()
    logger.info(
        f"Reference data ready: {len(reference.geocoder)} centroids, {len(reference.zones)} zones"
    )
    if not settings.distance_provider_enabled:
        logger.warning("GOOGLE_MAPS_API_KEY not set, distances use haversine fallback")

    yield

    logger.info("Shutting down...")


FULL_API_DESCRIPTION = """
## FreightBid API

Multi-vendor freight quotes and reverse auctions.

| Module | Description |
|--------|-------------|
| **Quotes** | Price a shipment across tied-up, temporary and public vendors |
| **Auctions** | Reverse auctions seeded from the lowest committed quote |

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 404 | Not Found - Resource doesn't exist, or no vendor could quote |
| 422 | Unprocessable Entity - Business rule violation |
| 503 | Service Unavailable - Temporary server error, retry |
"""

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


def _error_body(request: Request, message, error_type: str) -> dict:
    return {
        "error": message,
        "type": error_type,
        "path": str(request.url.path),
        "method": request.method,
    }


@app.exception_handler(FreightBidError)
async def freightbid_exception_handler(request: Request, exc: FreightBidError):
    """Map service errors to their HTTP status."""
    if isinstance(exc, ServerFault):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.message, type(exc).__name__),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, same as service-level validation."""
    messages = []
    for item in exc.errors():
        location = ".".join(str(p) for p in item.get("loc", ()) if p != "body")
        messages.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(request, "; ".join(messages), "ValidationError"),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: log with stack trace, return an opaque 500."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal server error", type(exc).__name__),
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "distance_provider": "enabled" if settings.distance_provider_enabled else "haversine",
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
