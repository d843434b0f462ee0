"""
Orderline - focused task queue with versioned, self-healing local storage.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from orderline.config import get_settings
from orderline.database import init_db, get_storage_engine
from orderline.routes import tasks, data, notifications
from orderline.exceptions import register_exception_handlers
from orderline.logging_config import setup_logging, get_logger
from orderline.services.reminders import ReminderManager

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info("Starting Orderline API...")
    await init_db()
    get_storage_engine()
    logger.info("Database initialized")

    reminders = None
    if settings.reminders_enabled:
        reminders = ReminderManager(
            interval_seconds=settings.reminder_interval_seconds,
            initial_delay_seconds=settings.reminder_initial_delay_seconds,
        )
        reminders.start()
    app.state.reminders = reminders

    yield

    logger.info("Shutting down Orderline API...")
    if reminders is not None:
        await reminders.stop()


app = FastAPI(
    title="Orderline",
    description="Focused task queue with versioned storage, backups and recovery",
    version="0.1.0",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(tasks.router, prefix="/profiles/{profile}/tasks", tags=["Tasks"])
app.include_router(data.router, prefix="/profiles/{profile}/data", tags=["Data"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
