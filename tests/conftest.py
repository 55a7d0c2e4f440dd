"""Shared test fixtures for the retention engine tests."""

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from retention.db.database import (  # noqa: E402
    create_engine,
    create_session_factory,
    get_session,
    init_db,
)
from retention.db.models import (  # noqa: E402
    InterventionDB,
    MemberDB,
    MemberVisitDB,
    MessageEventDB,
    PlayDB,
    TenantDB,
)
from retention.domains.interventions.channels import ChannelRegistry, DispatchError  # noqa: E402
from retention.domains.interventions.config import EngineConfig  # noqa: E402
from retention.domains.interventions.engine import InterventionEngine  # noqa: E402
from retention.domains.interventions.models import Channel  # noqa: E402

CRON_SECRET = "test-cron-secret"

# Tuesday midday, outside the default 21:00-08:00 quiet hours
FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

WIN_BACK_BODY = (
    "Hi {{first_name}}, it has been {{days_since_last_visit}} days since your last "
    "visit to {{gym_name}}."
)


class FixedClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSender:
    """Records every send attempt and returns unique provider ids."""

    def __init__(
        self, prefix: str, fail_with: Exception | None = None, delay: float = 0.0
    ) -> None:
        self.prefix = prefix
        self.fail_with = fail_with
        self.delay = delay
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str | None, body: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "body": body})
        provider_message_id = f"{self.prefix}-{len(self.sent)}"
        if self.delay:
            await asyncio.sleep(self.delay)
        return provider_message_id


class Seeder:
    """Writes tenants, members, plays and interventions relative to the test clock."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: FixedClock):
        self.session_factory = session_factory
        self.clock = clock

    @property
    def today(self) -> date:
        return self.clock().date()

    async def _add(self, *rows) -> None:
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()

    async def tenant(
        self,
        name: str = "Iron Works Gym",
        timezone: str | None = "UTC",
        auto_interventions_enabled: bool = True,
    ) -> str:
        tenant = TenantDB(
            name=name, timezone=timezone, auto_interventions_enabled=auto_interventions_enabled
        )
        await self._add(tenant)
        return tenant.id

    async def member(
        self,
        tenant_id: str,
        joined_days_ago: int | None = 200,
        visit_days_ago: list[int] | None = None,
        first_name: str = "Sam",
        last_name: str = "Rivera",
        email: str | None = "sam@example.com",
        phone: str | None = None,
        **fields,
    ) -> str:
        visit_days_ago = visit_days_ago or []
        visits = [self.today - timedelta(days=d) for d in visit_days_ago]
        member = MemberDB(
            tenant_id=tenant_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            joined_date=(
                self.today - timedelta(days=joined_days_ago)
                if joined_days_ago is not None
                else None
            ),
            last_visit_date=max(visits) if visits else None,
            **fields,
        )
        async with self.session_factory() as session:
            session.add(member)
            await session.flush()
            session.add_all(MemberVisitDB(member_id=member.id, visited_on=v) for v in visits)
            await session.commit()
        return member.id

    async def at_risk_member(self, tenant_id: str, **fields) -> str:
        """Joined 200 days ago, last seen 20 days ago: high churn risk."""
        return await self.member(tenant_id, joined_days_ago=200, visit_days_ago=[20], **fields)

    async def regular_member(self, tenant_id: str, **fields) -> str:
        """Visits every other day and was in yesterday: no churn risk."""
        return await self.member(
            tenant_id, joined_days_ago=200, visit_days_ago=list(range(1, 60, 2)), **fields
        )

    async def play(self, tenant_id: str, **fields) -> str:
        values = {
            "name": "Win-back",
            "is_active": True,
            "trigger_type": "DAILY_BATCH",
            "min_risk_score": 50,
            "channels": ["EMAIL"],
            "requires_approval": False,
            "quiet_hours_start": "21:00",
            "quiet_hours_end": "08:00",
            "max_messages_per_member_per_week": 2,
            "cooldown_days": 3,
            "template_subject": "We miss you, {{first_name}}",
            "template_body": WIN_BACK_BODY,
            "created_at": self.clock(),
            "updated_at": self.clock(),
        }
        values.update(fields)
        play = PlayDB(tenant_id=tenant_id, **values)
        await self._add(play)
        return play.id

    async def intervention(
        self,
        tenant_id: str,
        member_id: str,
        play_id: str,
        status: str = "SENT",
        created_days_ago: int = 0,
        channel: str = "EMAIL",
        provider_message_id: str | None = None,
        scheduled_at: datetime | None = None,
    ) -> str:
        created_at = self.clock() - timedelta(days=created_days_ago)
        intervention = InterventionDB(
            tenant_id=tenant_id,
            member_id=member_id,
            play_id=play_id,
            channel=channel,
            status=status,
            reason="seeded",
            rendered_subject="Hello",
            rendered_body="Hello there",
            provider_message_id=provider_message_id,
            scheduled_at=scheduled_at,
            due_date=created_at.date(),
            sent_at=created_at if status in ("SENT", "DELIVERED") else None,
            created_at=created_at,
            updated_at=created_at,
        )
        await self._add(intervention)
        return intervention.id

    async def interventions(self, member_id: str | None = None) -> list[InterventionDB]:
        async with self.session_factory() as session:
            stmt = select(InterventionDB).order_by(InterventionDB.created_at)
            if member_id is not None:
                stmt = stmt.where(InterventionDB.member_id == member_id)
            return list((await session.execute(stmt)).scalars().all())

    async def get_intervention(self, intervention_id: str) -> InterventionDB:
        async with self.session_factory() as session:
            return await session.get(InterventionDB, intervention_id)

    async def event_types(self, intervention_id: str) -> list[str]:
        async with self.session_factory() as session:
            stmt = select(MessageEventDB.type).where(
                MessageEventDB.intervention_id == intervention_id
            )
            return sorted((await session.execute(stmt)).scalars().all())


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'retention.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(session_factory, clock) -> Seeder:
    return Seeder(session_factory, clock)


@pytest.fixture
def email_sender() -> FakeSender:
    return FakeSender("email")


@pytest.fixture
def sms_sender() -> FakeSender:
    return FakeSender("sms")


@pytest.fixture
def registry(email_sender, sms_sender) -> ChannelRegistry:
    return ChannelRegistry({Channel.EMAIL: email_sender, Channel.SMS: sms_sender})


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(default_timezone="UTC", max_concurrency=1)


@pytest.fixture
def engine(session_factory, engine_config, registry, clock) -> InterventionEngine:
    return InterventionEngine(
        session_factory=session_factory,
        config=engine_config,
        registry=registry,
        clock=clock,
    )


@pytest_asyncio.fixture
async def api_client(engine, session_factory, db_engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX client on the app, wired to the test database and engine."""
    from retention.api.dependencies import get_cron_secret, get_engine
    from retention.main import app

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_cron_secret] = lambda: CRON_SECRET
    app.state.db_engine = db_engine
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        del app.state.db_engine


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}
