"""Play configuration CRUD."""

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from retention.api.dependencies import get_engine
from retention.db.database import get_session
from retention.db.models import PlayDB
from retention.domains.interventions import repository
from retention.domains.interventions.engine import InterventionEngine
from retention.domains.interventions.models import PlayCreate, PlayUpdate, PlayView

logger = structlog.get_logger()
router = APIRouter(prefix="/plays", tags=["plays"])


async def _get_play(session: AsyncSession, play_id: str) -> PlayDB:
    play = await session.get(PlayDB, play_id)
    if play is None or play.deleted_at is not None:
        raise LookupError(f"Play {play_id} not found")
    return play


def _view(play: PlayDB) -> dict:
    return PlayView.model_validate(play).model_dump(mode="json")


@router.post("", status_code=201)
async def create_play(
    body: PlayCreate,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    if await repository.get_tenant(session, body.tenant_id) is None:
        raise LookupError(f"Tenant {body.tenant_id} not found")

    now = engine.clock()
    data = body.model_dump()
    data["channels"] = [c.value for c in body.channels]
    data["trigger_type"] = body.trigger_type.value
    play = PlayDB(**data, created_at=now, updated_at=now)
    session.add(play)
    await session.commit()

    logger.info("play_created", play_id=play.id, tenant_id=play.tenant_id, name=play.name)
    return _view(play)


@router.get("")
async def list_plays(
    tenant_id: str = Query(alias="tenantId", min_length=1),
    include_inactive: bool = Query(default=True, alias="includeInactive"),
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict:
    stmt = select(PlayDB).where(PlayDB.tenant_id == tenant_id, PlayDB.deleted_at.is_(None))
    if not include_inactive:
        stmt = stmt.where(PlayDB.is_active.is_(True))
    stmt = stmt.order_by(PlayDB.created_at, PlayDB.id)
    plays = (await session.execute(stmt)).scalars().all()
    return {"plays": [_view(p) for p in plays], "total": len(plays)}


@router.get("/{play_id}")
async def get_play(
    play_id: str,
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict:
    return _view(await _get_play(session, play_id))


@router.patch("/{play_id}")
async def update_play(
    play_id: str,
    body: PlayUpdate,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    play = await _get_play(session, play_id)
    changes = body.changes()
    for name, value in changes.items():
        if name == "channels":
            value = [c.value for c in value]
        elif name == "trigger_type":
            value = value.value
        setattr(play, name, value)
    play.updated_at = engine.clock()
    await session.commit()

    logger.info("play_updated", play_id=play_id, fields=sorted(changes))
    return _view(play)


@router.delete("/{play_id}", status_code=204)
async def delete_play(
    play_id: str,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> Response:
    """Soft-delete when interventions reference the play, hard-delete otherwise."""
    play = await _get_play(session, play_id)
    if await repository.count_play_interventions(session, play_id) > 0:
        now = engine.clock()
        play.deleted_at = now
        play.is_active = False
        play.updated_at = now
        logger.info("play_soft_deleted", play_id=play_id)
    else:
        await session.delete(play)
        logger.info("play_deleted", play_id=play_id)
    await session.commit()
    return Response(status_code=204)
