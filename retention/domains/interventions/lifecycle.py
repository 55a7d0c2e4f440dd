"""Intervention lifecycle manager.

Owns every status change after creation: approval gating, quiet-hours
holds, dispatch, operator approve/cancel. Status writes are compare-and-set
so a concurrent writer can never be overwritten, and each write commits
together with its MessageEvent.
"""

from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from retention.db.models import InterventionDB, MemberDB, PlayDB

from . import repository
from .channels import ChannelRegistry, DispatchError
from .config import EngineConfig
from .matcher import can_receive, contact_address
from .models import (
    Candidate,
    Channel,
    InterventionStatus,
    MessageEventType,
    PlayConfig,
    RenderedMessage,
)
from .policy import quiet_hours_hold
from .quiet_hours import resolve_timezone
from .state import InvalidTransitionError, transition

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class InterventionLifecycle:
    def __init__(self, registry: ChannelRegistry, config: EngineConfig, clock: Clock) -> None:
        self.registry = registry
        self.config = config
        self.clock = clock

    # --- Creation and auto-advance ---

    async def create(
        self,
        session: AsyncSession,
        candidate: Candidate,
        rendered: RenderedMessage,
        due_date: date,
        now: datetime,
    ) -> InterventionDB | None:
        """Persist a CANDIDATE with its QUEUED event.

        Returns None when the daily key already exists.
        """
        intervention = InterventionDB(
            tenant_id=candidate.member.tenant_id,
            member_id=candidate.member.id,
            play_id=candidate.play.id,
            channel=candidate.channel.value,
            status=InterventionStatus.CANDIDATE.value,
            reason=candidate.reason,
            rendered_subject=rendered.subject,
            rendered_body=rendered.body,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        session.add(intervention)
        try:
            await session.flush()
            repository.append_event(
                session,
                intervention.id,
                MessageEventType.QUEUED,
                now,
                {"play_id": candidate.play.id, "channel": candidate.channel.value},
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(
                "intervention_duplicate_skipped",
                member_id=candidate.member.id,
                play_id=candidate.play.id,
                due_date=due_date.isoformat(),
            )
            return None

        logger.info(
            "intervention_created",
            intervention_id=intervention.id,
            member_id=candidate.member.id,
            play_id=candidate.play.id,
            channel=candidate.channel.value,
        )
        return intervention

    async def advance(
        self,
        session: AsyncSession,
        intervention: InterventionDB,
        play: PlayConfig,
        tz: ZoneInfo,
        force_approval: bool,
        now: datetime,
    ) -> InterventionStatus | None:
        """Move a fresh CANDIDATE to PENDING_APPROVAL, or schedule and dispatch it."""
        if play.requires_approval or force_approval:
            target = transition(InterventionStatus.CANDIDATE, InterventionStatus.PENDING_APPROVAL)
            await self._set_status(
                session, intervention.id, InterventionStatus.CANDIDATE, target, now
            )
            await session.commit()
            logger.info(
                "intervention_pending_approval",
                intervention_id=intervention.id,
                forced=force_approval and not play.requires_approval,
            )
            return target

        target = transition(InterventionStatus.CANDIDATE, InterventionStatus.SCHEDULED)
        await self._set_status(
            session, intervention.id, InterventionStatus.CANDIDATE, target, now
        )
        await session.commit()
        return await self.schedule_or_dispatch(session, intervention, play, tz, now)

    async def schedule_or_dispatch(
        self,
        session: AsyncSession,
        intervention: InterventionDB,
        play: PlayConfig,
        tz: ZoneInfo,
        now: datetime,
    ) -> InterventionStatus | None:
        """Hold a SCHEDULED intervention through quiet hours, otherwise send it now."""
        hold_until = quiet_hours_hold(play, tz, now)
        if hold_until is not None:
            held = await repository.compare_and_set_status(
                session,
                intervention.id,
                InterventionStatus.SCHEDULED,
                InterventionStatus.SCHEDULED,
                now,
                scheduled_at=hold_until,
            )
            await session.commit()
            if held:
                logger.info(
                    "intervention_held_for_quiet_hours",
                    intervention_id=intervention.id,
                    scheduled_at=hold_until.isoformat(),
                )
            return InterventionStatus.SCHEDULED
        return await self.dispatch(session, intervention, now)

    async def dispatch(
        self, session: AsyncSession, intervention: InterventionDB, now: datetime
    ) -> InterventionStatus | None:
        """Claim a SCHEDULED intervention as SENT, then call the provider once.

        The claim commits before the provider call and is never retried.
        Sender errors move the claim to FAILED. Returns None when another
        writer claimed the row first.
        """
        intervention_id = intervention.id
        channel = Channel(intervention.channel)
        sender = self.registry.get(channel)
        member_row = await session.get(MemberDB, intervention.member_id)

        error: str | None = None
        if sender is None:
            error = f"No sender registered for {channel}"
        elif member_row is None:
            error = f"Member {intervention.member_id} not found"
        elif not can_receive(member_row, channel):
            error = f"Member cannot receive {channel}"
        if error:
            logger.warning(
                "intervention_undeliverable", intervention_id=intervention_id, error=error
            )
            return await self._fail(
                session, intervention_id, InterventionStatus.SCHEDULED, now, error
            )

        address = contact_address(member_row, channel)
        claimed = await repository.compare_and_set_status(
            session,
            intervention_id,
            InterventionStatus.SCHEDULED,
            transition(InterventionStatus.SCHEDULED, InterventionStatus.SENT),
            now,
            sent_at=now,
        )
        if not claimed:
            await session.rollback()
            logger.info("intervention_dispatch_claimed_elsewhere", intervention_id=intervention_id)
            return None
        await session.commit()

        try:
            provider_message_id = await sender.send(
                address, intervention.rendered_subject, intervention.rendered_body
            )
        except DispatchError as e:
            logger.warning(
                "intervention_dispatch_failed", intervention_id=intervention_id, error=str(e)
            )
            return await self._fail(
                session, intervention_id, InterventionStatus.SENT, now, str(e), sent_at=None
            )
        except Exception as e:
            logger.exception("intervention_dispatch_error", intervention_id=intervention_id)
            return await self._fail(
                session, intervention_id, InterventionStatus.SENT, now, str(e), sent_at=None
            )

        await repository.set_provider_message_id(session, intervention_id, provider_message_id)
        repository.append_event(
            session,
            intervention_id,
            MessageEventType.SENT,
            now,
            {"provider_message_id": provider_message_id, "channel": channel.value},
        )
        await session.commit()
        logger.info(
            "intervention_sent",
            intervention_id=intervention_id,
            channel=channel.value,
            provider_message_id=provider_message_id,
        )
        return InterventionStatus.SENT

    # --- Operator actions ---

    async def approve(self, session: AsyncSession, intervention_id: str) -> InterventionDB:
        """PENDING_APPROVAL -> SCHEDULED, then the usual quiet-hours/dispatch step.

        Raises:
            LookupError: unknown intervention id.
            InvalidTransitionError: the intervention is not pending approval.
        """
        now = self.clock()
        intervention = await self._require(session, intervention_id)
        current = InterventionStatus(intervention.status)
        if current != InterventionStatus.PENDING_APPROVAL:
            raise InvalidTransitionError(current, InterventionStatus.SCHEDULED)

        await self._set_status(
            session,
            intervention_id,
            InterventionStatus.PENDING_APPROVAL,
            transition(current, InterventionStatus.SCHEDULED),
            now,
        )
        await session.commit()
        logger.info("intervention_approved", intervention_id=intervention_id)

        play_row = await session.get(PlayDB, intervention.play_id)
        tenant = await repository.get_tenant(session, intervention.tenant_id)
        tz = resolve_timezone(tenant.timezone if tenant else None, self.config.default_timezone)
        await self.schedule_or_dispatch(
            session, intervention, PlayConfig.model_validate(play_row), tz, now
        )
        return await repository.get_intervention(session, intervention_id, with_relations=True)

    async def cancel(self, session: AsyncSession, intervention_id: str) -> InterventionDB:
        """Any non-terminal status -> CANCELED.

        Raises:
            LookupError: unknown intervention id.
            InvalidTransitionError: the intervention is already terminal.
        """
        now = self.clock()
        intervention = await self._require(session, intervention_id)
        current = InterventionStatus(intervention.status)
        target = transition(current, InterventionStatus.CANCELED)

        await self._set_status(session, intervention_id, current, target, now)
        repository.append_event(
            session,
            intervention_id,
            MessageEventType.CANCELED,
            now,
            {"previous_status": current.value},
        )
        await session.commit()
        logger.info(
            "intervention_canceled", intervention_id=intervention_id, previous=current.value
        )
        return await repository.get_intervention(session, intervention_id, with_relations=True)

    # --- Helpers ---

    async def _require(self, session: AsyncSession, intervention_id: str) -> InterventionDB:
        intervention = await repository.get_intervention(session, intervention_id)
        if intervention is None:
            raise LookupError(f"Intervention {intervention_id} not found")
        return intervention

    async def _set_status(
        self,
        session: AsyncSession,
        intervention_id: str,
        expected: InterventionStatus,
        target: InterventionStatus,
        now: datetime,
        **values,
    ) -> None:
        """Compare-and-set, raising if another writer got there first."""
        if not await repository.compare_and_set_status(
            session, intervention_id, expected, target, now, **values
        ):
            await session.rollback()
            current = await repository.get_intervention(session, intervention_id)
            actual = InterventionStatus(current.status) if current else expected
            raise InvalidTransitionError(actual, target)

    async def _fail(
        self,
        session: AsyncSession,
        intervention_id: str,
        expected: InterventionStatus,
        now: datetime,
        error: str,
        **values,
    ) -> InterventionStatus | None:
        """Move to FAILED with a FAILED event carrying the error.

        Returns None when another writer changed the status first.
        """
        target = transition(expected, InterventionStatus.FAILED)
        if not await repository.compare_and_set_status(
            session, intervention_id, expected, target, now, **values
        ):
            await session.rollback()
            logger.info("intervention_failure_not_recorded", intervention_id=intervention_id)
            return None
        repository.append_event(
            session, intervention_id, MessageEventType.FAILED, now, {"error": error}
        )
        await session.commit()
        return target
