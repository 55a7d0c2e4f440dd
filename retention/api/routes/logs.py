"""Intervention log query endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from retention.db.database import get_session
from retention.domains.interventions import repository
from retention.domains.interventions.models import (
    Channel,
    InterventionPage,
    InterventionStatus,
    InterventionView,
)

router = APIRouter(tags=["logs"])


@router.get("/logs")
async def list_logs(
    tenant_id: str = Query(alias="tenantId", min_length=1),
    member_id: str | None = Query(default=None, alias="memberId"),
    channel: Channel | None = Query(default=None),
    status: InterventionStatus | None = Query(default=None),
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict:
    """Paginated interventions, newest first, with play name, member and events."""
    rows, total = await repository.list_interventions(
        session,
        tenant_id=tenant_id,
        member_id=member_id,
        channel=channel.value if channel else None,
        status=status.value if status else None,
        created_from=created_from,
        created_to=created_to,
        limit=limit,
        offset=offset,
    )
    page = InterventionPage(
        interventions=[InterventionView.model_validate(r) for r in rows], total=total
    )
    return page.model_dump(mode="json")
