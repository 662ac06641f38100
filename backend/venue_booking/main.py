"""
Venue Booking API - Main Application Entry Point

Booking core for seated dinner-concert events:
- Advisory table holds during checkout (in-memory or Redis)
- At-most-one-active-booking-per-table enforced by the database
- Idempotent payment webhook reconciliation and an admin recovery path
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from venue_booking.api.middleware import RequestLoggingMiddleware
from venue_booking.api.router import api_router
from venue_booking.core.config import get_settings
from venue_booking.core.exceptions import BookingError, ValidationError
from venue_booking.core.logging import setup_logging, get_logger
from venue_booking.core.metrics import metrics_endpoint
from venue_booking.infrastructure import get_redis, close_redis
from venue_booking.services.cache_service import get_cache_stats
from venue_booking.services.strategy_factory import reset_hold_manager

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        hold_store=settings.HOLD_STORE,
        payment_provider=settings.PAYMENT_PROVIDER,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    reset_hold_manager()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Table holds, concurrency-safe bookings and payment reconciliation",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "booking_error",
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
        **exc.context,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are 400 VALIDATION_ERROR, like every other validation failure."""
    body = ValidationError().to_dict()
    body["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()
