"""cadence - recurring routines mirrored into Todoist."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import constants, settings
from src.core.db_client import init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.module_registry import get_all_scheduled_jobs, get_modules, register_module
from src.core.redis_client import redis_client
from src.core.scheduler import start_scheduler, stop_scheduler
from src.core.scheduler_tracker import job_tracker
from src.interface.routines_router import router as routines_router
from src.interface.webhook import router as webhook_router
from src.modules.routines import RoutinesModule


logger = logging.getLogger(__name__)


def register_modules() -> None:
    """Register the feature modules whose tables and jobs the app serves."""
    if "routines" not in get_modules():
        register_module(RoutinesModule())


async def check_todoist_connectivity() -> None:
    """Verify the Todoist token works.

    Raises:
        ConnectionError: If unable to reach Todoist or the token is rejected
    """
    try:
        token = settings.require_credential("todoist_api_token", "Todoist")
        url = f"{settings.todoist_base_url}/projects"
        async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
            response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
        if not response.is_success:
            raise ConnectionError(f"Todoist returned status {response.status_code}")
        logger.info("startup_validation", extra={"service": "todoist", "status": "ok"})
    except (httpx.HTTPError, ConnectionError) as e:
        logger.error("startup_validation", extra={"service": "todoist", "status": "failed", "error": str(e)})
        raise ConnectionError(f"Todoist connectivity check failed: {e}") from e


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs a warning if unavailable but doesn't fail.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


async def validate_startup_configuration() -> None:
    """Validate required credentials and external service connectivity.

    Exits the process with a clear message when validation fails.
    """
    logger.info("startup_validation_begin")

    try:
        settings.require_credential("todoist_api_token", "Todoist")
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_todoist_connectivity()
        await check_redis_connectivity()

        logger.info("startup_validation_complete", extra={"status": "ok"})

    except (ValueError, ConnectionError) as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()

    await validate_startup_configuration()

    register_modules()
    await init_db()
    logger.info("Database initialized")

    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await redis_client.close()


app = FastAPI(
    title="cadence",
    description="Recurring routines mirrored into Todoist",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(webhook_router)
app.include_router(routines_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    register_modules()

    job_statuses = {}
    for job in get_all_scheduled_jobs():
        job_statuses[job.id] = await job_tracker.get_job_status(job.id)

    dlq = job_tracker.get_dead_letter_queue()

    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": job_statuses,
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
