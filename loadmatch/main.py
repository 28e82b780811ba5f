import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from loadmatch import models  # noqa: F401  (registers tables on Base.metadata)
from loadmatch.api.router import api_router
from loadmatch.background.scheduler import matching_scheduler, shutdown_scheduler, start_scheduler
from loadmatch.core.config import get_settings
from loadmatch.core.db import AsyncSessionFactory, check_database_connection, init_database
from loadmatch.services.event_dispatcher import drain_background_events
from loadmatch.services.notifications import register_notification_handlers

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

db_initialized = False
db_error: str | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global db_initialized, db_error
    logger.info("Starting application initialization")

    async def initialize_database():
        """Initialize database in background - non-blocking for health checks."""
        global db_initialized, db_error
        try:
            if not await check_database_connection():
                db_error = "Database connection failed"
                logger.error("lifespan_db_unavailable", extra={"error": db_error})
                return
            await asyncio.wait_for(init_database(), timeout=30.0)
            db_initialized = True
            logger.info("Database initialization complete")
        except asyncio.TimeoutError:
            db_error = "Database initialization timed out after 30s"
            logger.error("lifespan_db_timeout", extra={"error": db_error})
        except Exception as exc:
            db_error = str(exc)
            logger.exception("Error initializing database")

    # Health checks respond while the database is still connecting
    init_task = asyncio.create_task(initialize_database())

    register_notification_handlers(AsyncSessionFactory)

    try:
        start_scheduler()
    except Exception as exc:
        logger.warning("Error starting scheduler", extra={"error": str(exc)})

    logger.info("Application startup complete - ready to accept requests")

    yield

    logger.info("Shutting down")
    if not init_task.done():
        init_task.cancel()
    await drain_background_events()
    shutdown_scheduler()


app = FastAPI(
    title=settings.project_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With", "X-Owner-Id"],
)

app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    return {"status": "ok", "environment": settings.environment}


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint - responds immediately, reports database status."""
    return {
        "status": "ok",
        "service": settings.project_name,
        "database_ready": db_initialized,
        "database_error": db_error,
        "matching_scheduler_running": matching_scheduler.running,
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict:
    """Readiness check - only returns ok when database is ready."""
    if not db_initialized:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "database_ready": False, "error": db_error},
        )
    return {"status": "ready", "database_ready": True}
