"""
Academy Booking API - Main Application Entry Point

Booking and payment orchestration for the coaching marketplace:
- Slot requests with capacity and enrollment enforced by the datastore
- Compare-and-set booking transitions (approve, reject, pay, cancel)
- Gateway payment orders, verification and the transaction ledger
- Payouts, notifications and audit records as post-commit side effects
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy_booking.api.errors import register_exception_handlers
from academy_booking.api.middleware import RequestLoggingMiddleware
from academy_booking.api.router import api_router
from academy_booking.core.config import get_settings
from academy_booking.core.logging import get_logger, setup_logging
from academy_booking.core.metrics import metrics_endpoint
from academy_booking.infrastructure.redis_client import close_redis, get_redis
from academy_booking.services.background_tasks import get_side_effect_runner
from academy_booking.services.cache_service import get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        payment_gateway=settings.PAYMENT_GATEWAY,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Fee settings served from the database")

    runner = get_side_effect_runner()
    runner.start()

    yield

    await runner.stop()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Booking and payment orchestration for coaching academies",
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

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    runner = get_side_effect_runner()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await get_cache_stats(),
        "side_effects": {"running": runner.running},
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()
