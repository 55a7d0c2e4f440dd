"""Wiring for the intervention engine components."""

from collections.abc import Callable
from datetime import UTC, date, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from retention.domains.scoring.assessment import MemberAssessor
from retention.domains.scoring.models import MemberAssessment

from .channels import ChannelRegistry
from .config import EngineConfig
from .lifecycle import InterventionLifecycle
from .matcher import PlayMatcher
from .models import DeliveryUpdate, ReconcileResult, RunResult
from .policy import PolicyGate
from .reconciler import DeliveryReconciler
from .renderer import MessageRenderer
from .scheduler import DailyScheduler
from .signals import EngagementSignalStore, SqlEngagementSignalStore


def utc_now() -> datetime:
    return datetime.now(UTC)


class InterventionEngine:
    """Holds one instance of every engine component, built from explicit inputs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: EngineConfig,
        registry: ChannelRegistry,
        clock: Callable[[], datetime] = utc_now,
        signals: EngagementSignalStore | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config
        self.registry = registry
        self.clock = clock
        self.signals = signals or SqlEngagementSignalStore()

        self.assessor = MemberAssessor(config.scoring, config.expected_visits_per_week)
        self.matcher = PlayMatcher(config.channel_priority)
        self.gate = PolicyGate(registry, config)
        self.renderer = MessageRenderer()
        self.lifecycle = InterventionLifecycle(registry, config, clock)
        self.reconciler = DeliveryReconciler(clock)
        self.scheduler = DailyScheduler(
            session_factory=session_factory,
            config=config,
            signals=self.signals,
            assessor=self.assessor,
            matcher=self.matcher,
            gate=self.gate,
            renderer=self.renderer,
            lifecycle=self.lifecycle,
            clock=clock,
        )

    async def run_for_tenant(self, tenant_id: str, force_approval: bool = False) -> RunResult:
        return await self.scheduler.run_for_tenant(tenant_id, force_approval=force_approval)

    async def run_all_tenants(self, force_approval: bool = True) -> list[RunResult]:
        return await self.scheduler.run_all_tenants(force_approval=force_approval)

    async def reconcile(self, session: AsyncSession, update: DeliveryUpdate) -> ReconcileResult:
        return await self.reconciler.reconcile(session, update)

    async def assess_member(
        self, session: AsyncSession, member_id: str, as_of: date | None = None
    ) -> MemberAssessment:
        """Assess one member as of a date (defaults to today in UTC).

        Raises:
            LookupError: unknown member.
            ValueError: the member cannot be scored.
        """
        member = await self.signals.get_member(session, member_id)
        if member is None:
            raise LookupError(f"Member {member_id} not found")
        return self.assessor.assess(member, as_of or self.clock().date())
