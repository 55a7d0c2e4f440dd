"""Delivery reconciliation from provider webhooks.

Provider-agnostic: receives normalised DeliveryUpdates. Unknown message ids
and unrecognised events are acknowledged without any change. Terminal
interventions never move again, so replays and out-of-order callbacks
cannot regress state or duplicate events.
"""

from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from . import repository
from .models import (
    DeliveryEventType,
    DeliveryUpdate,
    InterventionStatus,
    MessageEventType,
    ReconcileOutcome,
    ReconcileResult,
)
from .state import can_transition, is_terminal

logger = structlog.get_logger()

_TARGETS: dict[DeliveryEventType, tuple[InterventionStatus, MessageEventType]] = {
    DeliveryEventType.DELIVERED: (InterventionStatus.DELIVERED, MessageEventType.DELIVERED),
    DeliveryEventType.FAILED: (InterventionStatus.FAILED, MessageEventType.FAILED),
}


class DeliveryReconciler:
    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.clock = clock

    async def reconcile(self, session: AsyncSession, update: DeliveryUpdate) -> ReconcileResult:
        if update.event_type is None:
            logger.debug(
                "webhook_event_ignored",
                provider=update.provider,
                provider_message_id=update.provider_message_id,
            )
            return ReconcileResult(outcome=ReconcileOutcome.IGNORED_EVENT)

        intervention = await repository.find_by_provider_message_id(
            session, update.provider_message_id
        )
        if intervention is None:
            logger.info(
                "webhook_unknown_message",
                provider=update.provider,
                provider_message_id=update.provider_message_id,
            )
            return ReconcileResult(outcome=ReconcileOutcome.UNKNOWN_MESSAGE)

        intervention_id = intervention.id
        current = InterventionStatus(intervention.status)
        target, event_type = _TARGETS[update.event_type]

        if is_terminal(current) or not can_transition(current, target):
            logger.info(
                "webhook_no_op",
                intervention_id=intervention_id,
                status=current.value,
                event_type=update.event_type.value,
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.NO_OP, intervention_id=intervention_id, status=current
            )

        now = self.clock()
        if not await repository.compare_and_set_status(
            session, intervention_id, current, target, now
        ):
            # A concurrent callback moved it first
            await session.rollback()
            logger.info("webhook_lost_race", intervention_id=intervention_id)
            return ReconcileResult(outcome=ReconcileOutcome.NO_OP, intervention_id=intervention_id)

        repository.append_event(session, intervention_id, event_type, now, update.raw)
        await session.commit()

        logger.info(
            "intervention_reconciled",
            intervention_id=intervention_id,
            provider=update.provider,
            previous=current.value,
            status=target.value,
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.APPLIED, intervention_id=intervention_id, status=target
        )
