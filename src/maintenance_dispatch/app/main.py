"""FastAPI application entry point for the maintenance dispatch engine."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from maintenance_dispatch.app.config import get_settings
from maintenance_dispatch.infra.database import async_session, init_db
from maintenance_dispatch.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)


async def sla_monitor_loop():
    """Run the SLA breach sweep every ``sla_sweep_interval_minutes``."""
    interval = get_settings().sla_sweep_interval_minutes * 60
    while True:
        try:
            async with async_session() as db:
                breached = await DispatchEngine.from_session(db).run_sla_sweep()
                if breached:
                    logger.info("SLA monitor: %d complaints past SLA", breached)
        except Exception as e:
            logger.error("SLA monitor error: %s", e)
        await asyncio.sleep(interval)


async def escalation_loop():
    """Run the emergency escalation sweep every ``escalation_sweep_interval_seconds``."""
    interval = get_settings().escalation_sweep_interval_seconds
    while True:
        try:
            async with async_session() as db:
                escalated = await DispatchEngine.from_session(db).run_escalation_sweep()
                if escalated:
                    logger.warning("Escalation monitor: escalated %d emergencies", escalated)
        except Exception as e:
            logger.error("Escalation monitor error: %s", e)
        await asyncio.sleep(interval)


def seconds_until_hour(hour: int, now: datetime) -> float:
    """Seconds from ``now`` until the next ``hour``:00 UTC."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def daily_cleaning_loop():
    """Generate the day's cleaning tasks at ``daily_task_hour`` UTC."""
    hour = get_settings().daily_task_hour
    while True:
        await asyncio.sleep(seconds_until_hour(hour, datetime.now(timezone.utc)))
        try:
            async with async_session() as db:
                result = await DispatchEngine.from_session(db).generate_daily_cleaning_tasks()
                logger.info("Daily cleaning tasks: %s", result.model_dump(mode="json"))
        except Exception as e:
            logger.error("Daily cleaning task generation error: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database and start the sweep loops."""
    await init_db()

    asyncio.create_task(sla_monitor_loop())
    asyncio.create_task(escalation_loop())
    asyncio.create_task(daily_cleaning_loop())
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Maintenance Dispatch API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: allow all origins in debug mode
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from maintenance_dispatch.app.routes.dispatch import router as dispatch_router
from maintenance_dispatch.app.routes.scheduler import router as scheduler_router

app.include_router(dispatch_router)
app.include_router(scheduler_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "maintenance-dispatch"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "maintenance_dispatch.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
