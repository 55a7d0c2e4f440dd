"""Intervention run and operator action endpoints."""

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from retention.api.dependencies import get_engine, require_cron_auth
from retention.db.database import get_session
from retention.domains.interventions.engine import InterventionEngine
from retention.domains.interventions.models import InterventionView

logger = structlog.get_logger()
router = APIRouter(prefix="/interventions", tags=["interventions"])


@router.post("/run-daily", dependencies=[Depends(require_cron_auth)])
async def run_daily(
    tenant_id: str = Query(alias="tenantId", min_length=1),
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Run one daily pass for a tenant, honouring each play's own approval flag."""
    result = await engine.run_for_tenant(tenant_id, force_approval=False)
    return result.model_dump()


@router.post("/{intervention_id}/approve")
async def approve_intervention(
    intervention_id: str,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    intervention = await engine.lifecycle.approve(session, intervention_id)
    return InterventionView.model_validate(intervention).model_dump(mode="json")


@router.post("/{intervention_id}/cancel")
async def cancel_intervention(
    intervention_id: str,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    intervention = await engine.lifecycle.cancel(session, intervention_id)
    return InterventionView.model_validate(intervention).model_dump(mode="json")
