"""Tests for reading member snapshots from the members tables."""

from datetime import date

import pytest

from retention.domains.interventions.signals import SqlEngagementSignalStore
from retention.domains.scoring.models import MembershipStatus


@pytest.fixture
def store() -> SqlEngagementSignalStore:
    return SqlEngagementSignalStore()


class TestSqlEngagementSignalStore:
    @pytest.mark.asyncio
    async def test_list_members_with_visits(self, store, session, seed):
        tenant_id = await seed.tenant()
        other_tenant_id = await seed.tenant("Other Gym")
        member_id = await seed.member(tenant_id, visit_days_ago=[3, 10, 10])
        await seed.member(other_tenant_id, visit_days_ago=[1])

        [member] = await store.list_members(session, tenant_id)

        assert member.id == member_id
        assert member.status == MembershipStatus.ACTIVE
        assert member.visit_dates == (date(2026, 3, 7), date(2026, 2, 28))
        assert member.last_visit_date == date(2026, 3, 7)

    @pytest.mark.asyncio
    async def test_invalid_rows_are_skipped(self, store, session, seed):
        tenant_id = await seed.tenant()
        await seed.member(tenant_id, status="frozen")
        valid_id = await seed.member(tenant_id, email="alex@example.com")

        members = await store.list_members(session, tenant_id)

        assert [m.id for m in members] == [valid_id]

    @pytest.mark.asyncio
    async def test_get_member(self, store, session, seed):
        tenant_id = await seed.tenant()
        member_id = await seed.member(tenant_id, visit_days_ago=[5])

        member = await store.get_member(session, member_id)

        assert member.tenant_id == tenant_id
        assert member.visit_dates == (date(2026, 3, 5),)
        assert await store.get_member(session, "missing") is None
