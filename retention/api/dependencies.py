"""Shared FastAPI dependencies."""

import hmac

from fastapi import Depends, Header, Request

from retention.config import settings
from retention.domains.interventions.engine import InterventionEngine


def get_engine(request: Request) -> InterventionEngine:
    """The engine built during application startup."""
    return request.app.state.engine


def get_cron_secret() -> str:
    return settings.cron_secret


async def require_cron_auth(
    authorization: str | None = Header(default=None),
    x_cron_secret: str | None = Header(default=None),
    secret: str = Depends(get_cron_secret),  # noqa: B008
) -> None:
    """Accept ``Authorization: Bearer <secret>`` or ``X-Cron-Secret: <secret>``."""
    if not secret:
        raise PermissionError("Cron secret is not configured")

    provided = x_cron_secret
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not provided or not hmac.compare_digest(provided.encode(), secret.encode()):
        raise PermissionError("Invalid cron credentials")
