"""Integration tests for the cron-triggered endpoints and their shared secret."""

from datetime import UTC, datetime

import pytest

from retention.api.dependencies import get_cron_secret
from retention.main import app
from tests.conftest import CRON_SECRET

pytestmark = pytest.mark.integration


class TestCronAuth:
    @pytest.mark.asyncio
    async def test_missing_credentials(self, api_client):
        response = await api_client.post("/cron/interventions")
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_wrong_secret(self, api_client):
        response = await api_client.post(
            "/cron/interventions", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_header_secret(self, api_client):
        response = await api_client.post(
            "/cron/interventions", headers={"X-Cron-Secret": CRON_SECRET}
        )
        assert response.status_code == 200
        assert response.json() == {"results": []}

    @pytest.mark.asyncio
    async def test_unset_secret_rejects_everything(self, api_client):
        app.dependency_overrides[get_cron_secret] = lambda: ""
        response = await api_client.post("/cron/interventions", headers={"X-Cron-Secret": ""})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_run_daily_requires_auth(self, api_client, seed):
        tenant_id = await seed.tenant()
        response = await api_client.post(
            "/interventions/run-daily", params={"tenantId": tenant_id}
        )
        assert response.status_code == 403


class TestCronRuns:
    @pytest.mark.asyncio
    async def test_cron_run_parks_for_approval(
        self, api_client, cron_headers, seed, email_sender
    ):
        tenant_id = await seed.tenant()
        await seed.at_risk_member(tenant_id)
        await seed.play(tenant_id)

        response = await api_client.post("/cron/interventions", headers=cron_headers)

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert result["tenant_id"] == tenant_id
        assert result["pending_approval"] == 1
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_scheduled(self, api_client, cron_headers, seed, clock, email_sender):
        clock.set(datetime(2026, 3, 10, 22, 0, tzinfo=UTC))
        tenant_id = await seed.tenant()
        await seed.at_risk_member(tenant_id)
        await seed.play(tenant_id)
        await api_client.post(
            "/interventions/run-daily", params={"tenantId": tenant_id}, headers=cron_headers
        )
        assert email_sender.sent == []

        clock.set(datetime(2026, 3, 11, 8, 0, tzinfo=UTC))
        response = await api_client.post("/cron/dispatch-scheduled", headers=cron_headers)

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert result["sent"] == 1
        assert len(email_sender.sent) == 1
