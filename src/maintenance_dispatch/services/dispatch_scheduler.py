"""Dispatch scheduler: one tick of the periodic engine sweeps."""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from maintenance_dispatch.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)


class DispatchScheduler:
    """Runs the periodic dispatch sweeps."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def tick(self, cleaning_date: Optional[date] = None) -> dict:
        """Run all sweeps. Called by the cron endpoint.

        Each sweep is isolated: one failing does not stop the others.
        Daily cleaning tasks are generated only when ``cleaning_date`` is given.
        Returns summary of actions taken.
        """
        engine = DispatchEngine.from_session(self.db)

        results = {}

        # 1. SLA breaches → admin + assignee notifications
        try:
            results["sla_breaches"] = await engine.run_sla_sweep()
        except Exception as e:
            logger.error("run_sla_sweep failed: %s", e)
            results["sla_error"] = str(e)
            await self.db.rollback()

        # 2. Unanswered emergencies → level 1
        try:
            results["emergencies_escalated"] = await engine.run_escalation_sweep()
        except Exception as e:
            logger.error("run_escalation_sweep failed: %s", e)
            results["escalation_error"] = str(e)
            await self.db.rollback()

        # 3. Daily cleaning roster
        if cleaning_date is not None:
            try:
                generated = await engine.generate_daily_cleaning_tasks(cleaning_date)
                results["cleaning_tasks"] = generated.model_dump(mode="json")
            except Exception as e:
                logger.error("generate_daily_cleaning_tasks failed: %s", e)
                results["cleaning_error"] = str(e)
                await self.db.rollback()

        return results
