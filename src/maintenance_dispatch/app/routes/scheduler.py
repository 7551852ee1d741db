"""Dispatch scheduler cron endpoint, called by an external scheduler."""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from maintenance_dispatch.app.config import get_settings
from maintenance_dispatch.infra.database import get_db
from maintenance_dispatch.services.dispatch_scheduler import DispatchScheduler

logger = logging.getLogger(__name__)


async def verify_internal_token(x_internal_token: str = Header(...)):
    """Verify that the request includes a valid internal auth token."""
    settings = get_settings()
    if x_internal_token != settings.internal_token:
        raise HTTPException(status_code=401, detail="Invalid internal token")


router = APIRouter(
    prefix="/api/internal/scheduler",
    tags=["dispatch-scheduler"],
    dependencies=[Depends(verify_internal_token)],
)


@router.post("/tick")
async def dispatch_tick(generate_cleaning: bool = False, db: AsyncSession = Depends(get_db)):
    """Run the SLA and escalation sweeps.

    With ``generate_cleaning`` the day's cleaning tasks are generated too.
    """
    scheduler = DispatchScheduler(db)
    cleaning_date = datetime.now(timezone.utc).date() if generate_cleaning else None
    results = await scheduler.tick(cleaning_date=cleaning_date)

    logger.info("Dispatch scheduler tick: %s", results)
    return {"ok": True, "results": results}
