"""
FastAPI application entry point for the alerting service

Initializes the FastAPI app, registers routers, and manages the reminder
scheduler across startup and shutdown.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alerting.api.v1.admin_alerts import router as admin_alerts_router
from alerting.api.v1.user_alerts import router as user_alerts_router
from alerting.core.clock import system_clock
from alerting.core.config import settings
from alerting.core.database import init_db
from alerting.core.exceptions import AlertingError
from alerting.core.logging_config import get_logger, setup_logging
from alerting.core.metrics import get_content_type, get_metrics, get_uptime_seconds, init_metrics
from alerting.middleware.logging_middleware import RequestLoggingMiddleware
from alerting.services.reminder_scheduler import ReminderScheduler

# Application version
APP_VERSION = "1.0.0"

setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)

init_metrics(version=APP_VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.

    - Startup: creates database tables and starts the reminder scheduler
    - Shutdown: stops the scheduler; an in-flight sweep is allowed to finish
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    init_db()
    logger.info("Database initialized", extra={"event_type": "database_init"})

    if getattr(app.state, "clock", None) is None:
        app.state.clock = system_clock

    reminder_scheduler = ReminderScheduler(clock=app.state.clock)
    app.state.reminder_scheduler = reminder_scheduler
    if settings.REMINDER_SCHEDULER_ENABLED:
        reminder_scheduler.start()
    else:
        logger.info(
            "Reminder scheduler disabled by configuration",
            extra={"event_type": "reminder_scheduler_disabled"}
        )

    yield

    logger.info("Application shutting down", extra={"event_type": "app_shutdown"})

    try:
        reminder_scheduler.stop()
    except Exception as e:
        logger.error(
            f"Error stopping reminder scheduler: {e}",
            extra={"event_type": "reminder_scheduler_shutdown_error", "error": str(e)}
        )

    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


app = FastAPI(
    title="Alerting API",
    description="Alert lifecycle: targeted delivery, read/snooze state and recurring reminders",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(AlertingError)
async def alerting_error_handler(request: Request, exc: AlertingError):
    """Map domain errors onto their HTTP status with the details inlined."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **(exc.details or {})},
    )


app.include_router(admin_alerts_router, prefix=settings.API_V1_PREFIX)
app.include_router(user_alerts_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """Root endpoint - API status check"""
    return {
        "name": "Alerting API",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    scheduler = getattr(request.app.state, "reminder_scheduler", None)
    return {
        "status": "healthy",
        "uptime_seconds": round(get_uptime_seconds(), 1),
        "reminder_scheduler_running": bool(scheduler and scheduler.is_running()),
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
