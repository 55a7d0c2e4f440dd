"""Member assessment endpoint."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from retention.api.dependencies import get_engine
from retention.db.database import get_session
from retention.domains.interventions.engine import InterventionEngine
from retention.domains.scoring.stages import STAGE_LABELS

router = APIRouter(prefix="/members", tags=["members"])


@router.get("/{member_id}/assessment")
async def get_member_assessment(
    member_id: str,
    as_of: date | None = Query(default=None, alias="asOf"),
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    """Commitment, churn risk, lifecycle stage and interpretation for one member."""
    assessment = await engine.assess_member(session, member_id, as_of)
    data = assessment.model_dump(mode="json")
    data["commitment"]["risk_flags"] = sorted(data["commitment"]["risk_flags"])
    data["stage_label"] = STAGE_LABELS[assessment.stage]
    return data
