"""Engagement signal store: read-only member snapshots for scoring."""

from typing import Protocol

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from retention.db.models import MemberDB
from retention.domains.scoring.models import MemberSnapshot

logger = structlog.get_logger()


class EngagementSignalStore(Protocol):
    async def list_members(
        self, session: AsyncSession, tenant_id: str
    ) -> list[MemberSnapshot]: ...

    async def get_member(self, session: AsyncSession, member_id: str) -> MemberSnapshot | None: ...


def snapshot_from_row(row: MemberDB) -> MemberSnapshot:
    visit_dates = tuple(sorted({v.visited_on for v in row.visits}, reverse=True))
    return MemberSnapshot(
        id=row.id,
        tenant_id=row.tenant_id,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        email=row.email,
        phone=row.phone,
        status=row.status,
        joined_date=row.joined_date,
        last_visit_date=row.last_visit_date,
        visit_dates=visit_dates,
        consent_email=row.consent_email,
        consent_sms=row.consent_sms,
        consent_whatsapp=row.consent_whatsapp,
        do_not_contact=row.do_not_contact,
    )


class SqlEngagementSignalStore:
    """Reads members and their visit history from the members tables."""

    async def list_members(self, session: AsyncSession, tenant_id: str) -> list[MemberSnapshot]:
        stmt = (
            select(MemberDB)
            .options(selectinload(MemberDB.visits))
            .where(MemberDB.tenant_id == tenant_id)
            .order_by(MemberDB.id)
        )
        result = await session.execute(stmt)

        snapshots: list[MemberSnapshot] = []
        for row in result.scalars().all():
            try:
                snapshots.append(snapshot_from_row(row))
            except ValidationError as e:
                logger.warning(
                    "member_record_invalid",
                    member_id=row.id,
                    tenant_id=tenant_id,
                    error=str(e),
                )
        return snapshots

    async def get_member(self, session: AsyncSession, member_id: str) -> MemberSnapshot | None:
        stmt = (
            select(MemberDB)
            .options(selectinload(MemberDB.visits))
            .where(MemberDB.id == member_id)
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        return snapshot_from_row(row) if row else None
