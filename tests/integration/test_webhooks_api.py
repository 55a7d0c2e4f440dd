"""Integration tests for provider delivery webhooks."""

import pytest

pytestmark = pytest.mark.integration


async def _sent_email(api_client, cron_headers, seed) -> str:
    tenant_id = await seed.tenant()
    member_id = await seed.at_risk_member(tenant_id)
    await seed.play(tenant_id)
    await api_client.post(
        "/interventions/run-daily", params={"tenantId": tenant_id}, headers=cron_headers
    )
    [intervention] = await seed.interventions(member_id)
    return intervention.id


class TestPostmarkWebhook:
    @pytest.mark.asyncio
    async def test_delivery(self, api_client, cron_headers, seed):
        intervention_id = await _sent_email(api_client, cron_headers, seed)

        response = await api_client.post(
            "/webhooks/postmark", json={"RecordType": "Delivery", "MessageID": "email-1"}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "outcome": "applied"}
        assert (await seed.get_intervention(intervention_id)).status == "DELIVERED"

    @pytest.mark.asyncio
    async def test_replay_is_acknowledged(self, api_client, cron_headers, seed):
        intervention_id = await _sent_email(api_client, cron_headers, seed)
        payload = {"RecordType": "Delivery", "MessageID": "email-1"}

        await api_client.post("/webhooks/postmark", json=payload)
        replay = await api_client.post("/webhooks/postmark", json=payload)

        assert replay.status_code == 200
        assert replay.json()["outcome"] == "no_op"
        assert (await seed.event_types(intervention_id)).count("DELIVERED") == 1

    @pytest.mark.asyncio
    async def test_unknown_message_id(self, api_client):
        response = await api_client.post(
            "/webhooks/postmark", json={"RecordType": "Bounce", "MessageID": "unknown"}
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "unknown_message"

    @pytest.mark.asyncio
    async def test_untracked_record_type(self, api_client):
        response = await api_client.post(
            "/webhooks/postmark", json={"RecordType": "Click", "MessageID": "email-1"}
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored_event"

    @pytest.mark.asyncio
    async def test_malformed_json(self, api_client):
        response = await api_client.post(
            "/webhooks/postmark",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_message_id(self, api_client):
        response = await api_client.post("/webhooks/postmark", json={"RecordType": "Delivery"})
        assert response.status_code == 400


class TestTwilioWebhook:
    @pytest.mark.asyncio
    async def test_missing_sid(self, api_client):
        response = await api_client.post("/webhooks/twilio", data={"MessageStatus": "failed"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_sid(self, api_client):
        response = await api_client.post(
            "/webhooks/twilio", data={"MessageSid": "SM-unknown", "MessageStatus": "delivered"}
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "unknown_message"
