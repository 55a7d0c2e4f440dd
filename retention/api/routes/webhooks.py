"""Inbound provider delivery webhooks.

Always 200 for well-formed payloads, including unknown message ids; only
malformed payloads are rejected with 400.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from retention.api.dependencies import get_engine
from retention.db.database import get_session
from retention.domains.interventions.engine import InterventionEngine
from retention.domains.interventions.webhooks import (
    WebhookPayloadError,
    parse_postmark,
    parse_twilio,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/postmark")
async def postmark_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    try:
        payload = await request.json()
    except ValueError as e:
        raise WebhookPayloadError("Postmark payload is not valid JSON") from e

    result = await engine.reconcile(session, parse_postmark(payload))
    return {"ok": True, "outcome": result.outcome.value}


@router.post("/twilio")
async def twilio_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),  # noqa: B008
    engine: InterventionEngine = Depends(get_engine),  # noqa: B008
) -> dict:
    form = await request.form()
    result = await engine.reconcile(session, parse_twilio(dict(form)))
    return {"ok": True, "outcome": result.outcome.value}
