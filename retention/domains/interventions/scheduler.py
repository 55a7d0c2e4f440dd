"""Daily intervention scheduler.

One pass per tenant: dispatch anything whose quiet-hours hold has expired,
then assess every member, match plays, gate, render, create and dispatch.
Re-running on the same tenant-local day creates nothing new; the daily
key (tenant, member, play, due date) is checked before insert and enforced
by a unique constraint.
"""

import asyncio
from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from retention.domains.scoring.assessment import MemberAssessor
from retention.domains.scoring.models import MemberSnapshot

from . import repository
from .config import EngineConfig
from .lifecycle import InterventionLifecycle
from .matcher import PlayMatcher
from .models import Candidate, InterventionStatus, PlayConfig, RunResult, TenantContext
from .policy import PolicyGate
from .quiet_hours import resolve_timezone
from .renderer import MessageRenderer, TemplateRenderError
from .signals import EngagementSignalStore

logger = structlog.get_logger()


class DailyScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: EngineConfig,
        signals: EngagementSignalStore,
        assessor: MemberAssessor,
        matcher: PlayMatcher,
        gate: PolicyGate,
        renderer: MessageRenderer,
        lifecycle: InterventionLifecycle,
        clock: Callable[[], datetime],
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.signals = signals
        self.assessor = assessor
        self.matcher = matcher
        self.gate = gate
        self.renderer = renderer
        self.lifecycle = lifecycle
        self.clock = clock

    async def run_all_tenants(self, force_approval: bool = True) -> list[RunResult]:
        """Run every tenant with auto-interventions enabled.

        Each tenant runs under the configured timeout. A failing tenant is
        reported in its own result and never stops the others.
        """
        async with self.session_factory() as session:
            tenant_ids = [t.id for t in await repository.list_auto_tenants(session)]

        results: list[RunResult] = []
        for tenant_id in tenant_ids:
            try:
                result = await asyncio.wait_for(
                    self.run_for_tenant(tenant_id, force_approval=force_approval),
                    timeout=self.config.run_timeout_seconds,
                )
            except TimeoutError:
                logger.error("tenant_run_timeout", tenant_id=tenant_id)
                result = RunResult(
                    tenant_id=tenant_id,
                    errors=[f"Run timed out after {self.config.run_timeout_seconds}s"],
                )
            except Exception as e:
                logger.exception("tenant_run_failed", tenant_id=tenant_id)
                result = RunResult(tenant_id=tenant_id, errors=[str(e)])
            results.append(result)

        logger.info("daily_run_complete", tenants=len(results))
        return results

    async def run_for_tenant(self, tenant_id: str, force_approval: bool = False) -> RunResult:
        """Run one daily pass for a tenant.

        Raises:
            LookupError: the tenant does not exist.
        """
        now = self.clock()
        async with self.session_factory() as session:
            tenant_row = await repository.get_tenant(session, tenant_id)
            if tenant_row is None:
                raise LookupError(f"Tenant {tenant_id} not found")
            tz = resolve_timezone(tenant_row.timezone, self.config.default_timezone)
            tenant = TenantContext(id=tenant_row.id, name=tenant_row.name, timezone=tz.key)
            plays = [
                PlayConfig.model_validate(p)
                for p in await repository.list_active_plays(session, tenant_id)
            ]
            members = await self.signals.list_members(session, tenant_id)

        result = RunResult(tenant_id=tenant_id)
        due = await self.dispatch_due(tenant_id)
        result.sent += due.sent
        result.failed += due.failed
        result.errors.extend(due.errors)

        due_date = now.astimezone(tz).date()
        log = logger.bind(tenant_id=tenant_id, due_date=due_date.isoformat())
        log.info(
            "tenant_run_started",
            members=len(members),
            plays=len(plays),
            force_approval=force_approval,
        )

        if plays:
            semaphore = asyncio.Semaphore(self.config.max_concurrency)

            async def bounded(member: MemberSnapshot) -> None:
                async with semaphore:
                    await self._process_member(
                        member, plays, tenant, tz, due_date, now, force_approval, result
                    )

            await asyncio.gather(*(bounded(m) for m in members))

        log.info(
            "tenant_run_finished",
            created=result.created,
            scheduled=result.scheduled,
            pending_approval=result.pending_approval,
            sent=result.sent,
            failed=result.failed,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def dispatch_due(self, tenant_id: str) -> RunResult:
        """Send interventions held for quiet hours whose hold has expired."""
        now = self.clock()
        result = RunResult(tenant_id=tenant_id)

        async with self.session_factory() as session:
            tenant_row = await repository.get_tenant(session, tenant_id)
            if tenant_row is None:
                raise LookupError(f"Tenant {tenant_id} not found")
            tz = resolve_timezone(tenant_row.timezone, self.config.default_timezone)
            due = [
                (row.id, PlayConfig.model_validate(row.play))
                for row in await repository.list_due_scheduled(session, tenant_id, now)
            ]

        for intervention_id, play in due:
            try:
                async with self.session_factory() as session:
                    intervention = await repository.get_intervention(session, intervention_id)
                    if intervention is None or intervention.status != InterventionStatus.SCHEDULED:
                        continue
                    status = await self.lifecycle.schedule_or_dispatch(
                        session, intervention, play, tz, now
                    )
            except Exception as e:
                logger.exception("scheduled_dispatch_failed", intervention_id=intervention_id)
                result.errors.append(f"intervention {intervention_id}: {e}")
                continue
            _tally(result, status)

        if due:
            logger.info(
                "scheduled_dispatch_complete",
                tenant_id=tenant_id,
                due=len(due),
                sent=result.sent,
                failed=result.failed,
                still_held=result.scheduled,
            )
        return result

    async def dispatch_due_all_tenants(self) -> list[RunResult]:
        async with self.session_factory() as session:
            tenant_ids = [t.id for t in await repository.list_tenants(session)]

        results: list[RunResult] = []
        for tenant_id in tenant_ids:
            try:
                results.append(await self.dispatch_due(tenant_id))
            except Exception as e:
                logger.exception("tenant_dispatch_failed", tenant_id=tenant_id)
                results.append(RunResult(tenant_id=tenant_id, errors=[str(e)]))
        return results

    async def _process_member(
        self,
        member: MemberSnapshot,
        plays: list[PlayConfig],
        tenant: TenantContext,
        tz: ZoneInfo,
        due_date: date,
        now: datetime,
        force_approval: bool,
        result: RunResult,
    ) -> None:
        try:
            assessment = self.assessor.assess(member, as_of=due_date)
        except ValueError as e:
            result.skipped += 1
            logger.info("member_skipped", member_id=member.id, reason=str(e))
            return

        for candidate in self.matcher.match(member, assessment, plays):
            try:
                await self._process_candidate(
                    candidate, tenant, tz, due_date, now, force_approval, result
                )
            except Exception as e:
                logger.exception(
                    "candidate_processing_failed",
                    member_id=member.id,
                    play_id=candidate.play.id,
                )
                result.errors.append(f"member {member.id} play {candidate.play.id}: {e}")

    async def _process_candidate(
        self,
        candidate: Candidate,
        tenant: TenantContext,
        tz: ZoneInfo,
        due_date: date,
        now: datetime,
        force_approval: bool,
        result: RunResult,
    ) -> None:
        async with self.session_factory() as session:
            decision = await self.gate.evaluate(session, candidate, tz, due_date, now)
            if not decision.allowed:
                result.skipped += 1
                return

            try:
                rendered = self.renderer.render(
                    candidate.play, candidate.member, candidate.assessment, tenant
                )
            except TemplateRenderError as e:
                result.skipped += 1
                result.errors.append(
                    f"member {candidate.member.id} play {candidate.play.id}: {e}"
                )
                logger.warning(
                    "template_render_failed",
                    member_id=candidate.member.id,
                    play_id=candidate.play.id,
                    error=str(e),
                )
                return

            intervention = await self.lifecycle.create(
                session, candidate, rendered, due_date, now
            )
            if intervention is None:
                result.skipped += 1
                return
            result.created += 1

            status = await self.lifecycle.advance(
                session, intervention, candidate.play, tz, force_approval, now
            )
            _tally(result, status)


def _tally(result: RunResult, status: InterventionStatus | None) -> None:
    if status == InterventionStatus.SENT:
        result.sent += 1
    elif status == InterventionStatus.FAILED:
        result.failed += 1
    elif status == InterventionStatus.SCHEDULED:
        result.scheduled += 1
    elif status == InterventionStatus.PENDING_APPROVAL:
        result.pending_approval += 1

