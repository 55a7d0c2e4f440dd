"""Cron-triggered batch endpoints."""

import structlog
from fastapi import APIRouter, Depends

from retention.api.dependencies import get_engine, require_cron_auth
from retention.domains.interventions.engine import InterventionEngine

logger = structlog.get_logger()
router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_auth)])


@router.post("/interventions")
async def run_interventions(
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Run the daily pass for every auto-enabled tenant, parking all results for approval."""
    results = await engine.run_all_tenants(force_approval=True)
    logger.info("cron_interventions_complete", tenants=len(results))
    return {"results": [r.model_dump() for r in results]}


@router.post("/dispatch-scheduled")
async def dispatch_scheduled(
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Send interventions whose quiet-hours hold has expired, across all tenants."""
    results = await engine.scheduler.dispatch_due_all_tenants()
    return {"results": [r.model_dump() for r in results]}
