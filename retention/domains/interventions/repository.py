"""Persistence queries for plays, interventions and message events."""

from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from retention.db.models import InterventionDB, MessageEventDB, PlayDB, TenantDB

from .models import InterventionStatus, MessageEventType


async def get_tenant(session: AsyncSession, tenant_id: str) -> TenantDB | None:
    return await session.get(TenantDB, tenant_id)


async def list_auto_tenants(session: AsyncSession) -> list[TenantDB]:
    stmt = (
        select(TenantDB)
        .where(TenantDB.auto_interventions_enabled.is_(True))
        .order_by(TenantDB.created_at, TenantDB.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_tenants(session: AsyncSession) -> list[TenantDB]:
    result = await session.execute(select(TenantDB).order_by(TenantDB.created_at, TenantDB.id))
    return list(result.scalars().all())


async def list_active_plays(session: AsyncSession, tenant_id: str) -> list[PlayDB]:
    stmt = (
        select(PlayDB)
        .where(
            PlayDB.tenant_id == tenant_id,
            PlayDB.is_active.is_(True),
            PlayDB.deleted_at.is_(None),
        )
        .order_by(PlayDB.created_at, PlayDB.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def exists_for_due_date(
    session: AsyncSession, tenant_id: str, member_id: str, play_id: str, due_date: date
) -> bool:
    stmt = select(func.count()).where(
        InterventionDB.tenant_id == tenant_id,
        InterventionDB.member_id == member_id,
        InterventionDB.play_id == play_id,
        InterventionDB.due_date == due_date,
    )
    return (await session.execute(stmt)).scalar_one() > 0


async def has_recent_for_play(
    session: AsyncSession, member_id: str, play_id: str, since: datetime
) -> bool:
    """Any non-canceled intervention for (member, play) created after ``since``."""
    stmt = select(func.count()).where(
        InterventionDB.member_id == member_id,
        InterventionDB.play_id == play_id,
        InterventionDB.status != InterventionStatus.CANCELED.value,
        InterventionDB.created_at > since,
    )
    return (await session.execute(stmt)).scalar_one() > 0


async def count_recent_for_member(session: AsyncSession, member_id: str, since: datetime) -> int:
    """Non-canceled interventions from any play created at or after ``since``."""
    stmt = select(func.count()).where(
        InterventionDB.member_id == member_id,
        InterventionDB.status != InterventionStatus.CANCELED.value,
        InterventionDB.created_at >= since,
    )
    return (await session.execute(stmt)).scalar_one()


async def get_intervention(
    session: AsyncSession, intervention_id: str, with_relations: bool = False
) -> InterventionDB | None:
    stmt = select(InterventionDB).where(InterventionDB.id == intervention_id)
    if with_relations:
        stmt = stmt.options(
            selectinload(InterventionDB.play),
            selectinload(InterventionDB.member),
            selectinload(InterventionDB.events),
        )
    stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_by_provider_message_id(
    session: AsyncSession, provider_message_id: str
) -> InterventionDB | None:
    stmt = select(InterventionDB).where(
        InterventionDB.provider_message_id == provider_message_id
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def compare_and_set_status(
    session: AsyncSession,
    intervention_id: str,
    expected: InterventionStatus,
    target: InterventionStatus,
    now: datetime,
    **values: Any,
) -> bool:
    """Move to ``target`` only if the row is still in ``expected``.

    Returns False when another writer changed the status first.
    """
    stmt = (
        update(InterventionDB)
        .where(
            InterventionDB.id == intervention_id,
            InterventionDB.status == expected.value,
        )
        .values(status=target.value, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def set_provider_message_id(
    session: AsyncSession, intervention_id: str, provider_message_id: str
) -> None:
    """Record the provider id whatever the status, so late webhooks still match."""
    stmt = (
        update(InterventionDB)
        .where(InterventionDB.id == intervention_id)
        .values(provider_message_id=provider_message_id)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


def append_event(
    session: AsyncSession,
    intervention_id: str,
    event_type: MessageEventType,
    now: datetime,
    payload: dict[str, Any] | None = None,
) -> MessageEventDB:
    event = MessageEventDB(
        intervention_id=intervention_id,
        type=event_type.value,
        payload=payload,
        created_at=now,
    )
    session.add(event)
    return event


async def list_due_scheduled(
    session: AsyncSession, tenant_id: str, now: datetime
) -> list[InterventionDB]:
    stmt = (
        select(InterventionDB)
        .options(selectinload(InterventionDB.play))
        .where(
            InterventionDB.tenant_id == tenant_id,
            InterventionDB.status == InterventionStatus.SCHEDULED.value,
            InterventionDB.scheduled_at.is_not(None),
            InterventionDB.scheduled_at <= now,
        )
        .order_by(InterventionDB.created_at, InterventionDB.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_play_interventions(session: AsyncSession, play_id: str) -> int:
    stmt = select(func.count()).where(InterventionDB.play_id == play_id)
    return (await session.execute(stmt)).scalar_one()


async def list_interventions(
    session: AsyncSession,
    tenant_id: str,
    member_id: str | None = None,
    channel: str | None = None,
    status: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[InterventionDB], int]:
    conditions = [InterventionDB.tenant_id == tenant_id]
    if member_id:
        conditions.append(InterventionDB.member_id == member_id)
    if channel:
        conditions.append(InterventionDB.channel == channel)
    if status:
        conditions.append(InterventionDB.status == status)
    if created_from:
        conditions.append(InterventionDB.created_at >= created_from)
    if created_to:
        conditions.append(InterventionDB.created_at <= created_to)

    total = (
        await session.execute(select(func.count()).select_from(InterventionDB).where(*conditions))
    ).scalar_one()

    stmt = (
        select(InterventionDB)
        .options(
            selectinload(InterventionDB.play),
            selectinload(InterventionDB.member),
            selectinload(InterventionDB.events),
        )
        .where(*conditions)
        .order_by(InterventionDB.created_at.desc(), InterventionDB.id)
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all()), total
