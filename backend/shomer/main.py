"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shomer.core.config import settings
from shomer.core.logging import setup_logging
from shomer.core.otel import initialize_otel, instrument_app
from shomer.db.redis import get_redis_client
from shomer.db.session import engine, init_db
from shomer.tasks.scheduler import VisibilityScheduler

from shomer.api import admin, history, locks, monitoring, platforms, schedule
from shomer.api import scheduler as scheduler_router

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if initialize_otel():
        logger.info(f"OpenTelemetry initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    scheduler = VisibilityScheduler()
    app.state.scheduler = scheduler
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()
        logger.info("Automatic visibility scheduler started")
    else:
        logger.info("Automatic visibility scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await scheduler.stop()


# Create FastAPI app
app = FastAPI(
    title="Shomer Backend",
    description="Automatic hide/restore of social media content around Shabbat",
    version="1.0.0",
    lifespan=lifespan
)

instrument_app(app, engine)

# CORS middleware
allowed_origins = [settings.FRONTEND_URL]
if settings.ENVIRONMENT == "development":
    allowed_origins.extend([
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(monitoring.router)
app.include_router(schedule.router)
app.include_router(locks.router)
app.include_router(history.router)
app.include_router(platforms.router)
app.include_router(admin.router)
app.include_router(scheduler_router.router)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )
