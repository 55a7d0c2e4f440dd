"""Unit tests for channel senders against mocked provider APIs."""

import json
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from retention.domains.interventions.channels import (
    ChannelRegistry,
    DispatchError,
    PostmarkEmailSender,
    TwilioSender,
    build_channel_registry,
)
from retention.domains.interventions.models import Channel


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPostmarkEmailSender:
    @pytest.mark.asyncio
    async def test_sends_and_returns_message_id(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"MessageID": "pm-123", "ErrorCode": 0})

        async with _client(handler) as client:
            sender = PostmarkEmailSender("token", "coach@gym.test", client=client)
            message_id = await sender.send("sam@example.com", "We miss you", "Hi Sam")

        assert message_id == "pm-123"
        request = seen[0]
        assert request.url == "https://api.postmarkapp.com/email"
        assert request.headers["X-Postmark-Server-Token"] == "token"
        body = json.loads(request.content)
        assert body["To"] == "sam@example.com"
        assert body["From"] == "coach@gym.test"
        assert body["Subject"] == "We miss you"
        assert body["TextBody"] == "Hi Sam"
        assert body["MessageStream"] == "outbound"

    @pytest.mark.asyncio
    async def test_rejection_raises_dispatch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"ErrorCode": 300, "Message": "Invalid email"})

        async with _client(handler) as client:
            sender = PostmarkEmailSender("token", "coach@gym.test", client=client)
            with pytest.raises(DispatchError, match="422"):
                await sender.send("not-an-email", None, "Hi")

    @pytest.mark.asyncio
    async def test_transport_error_raises_dispatch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with _client(handler) as client:
            sender = PostmarkEmailSender("token", "coach@gym.test", client=client)
            with pytest.raises(DispatchError, match="request failed"):
                await sender.send("sam@example.com", None, "Hi")

    @pytest.mark.asyncio
    async def test_unconfigured_sender_stubs(self):
        sender = PostmarkEmailSender("", "")
        message_id = await sender.send("sam@example.com", None, "Hi")
        assert message_id.startswith("stub-")


class TestTwilioSender:
    @pytest.mark.asyncio
    async def test_sms(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

        async with _client(handler) as client:
            sender = TwilioSender("AC1", "secret", "+15550001111", client=client)
            message_id = await sender.send("+15552223333", "ignored", "Hi Sam")

        assert message_id == "SM123"
        request = seen[0]
        assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        form = parse_qs(request.content.decode())
        assert form["To"] == ["+15552223333"]
        assert form["From"] == ["+15550001111"]
        assert form["Body"] == ["Hi Sam"]

    @pytest.mark.asyncio
    async def test_whatsapp_prefixes_addresses(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"sid": "SM456"})

        async with _client(handler) as client:
            sender = TwilioSender("AC1", "secret", "+15550001111", whatsapp=True, client=client)
            await sender.send("+15552223333", None, "Hi")

        form = parse_qs(seen[0].content.decode())
        assert form["To"] == ["whatsapp:+15552223333"]
        assert form["From"] == ["whatsapp:+15550001111"]

    @pytest.mark.asyncio
    async def test_missing_sid_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            sender = TwilioSender("AC1", "secret", "+15550001111", client=client)
            with pytest.raises(DispatchError, match="no sid"):
                await sender.send("+15552223333", None, "Hi")


class TestChannelRegistry:
    def test_register_and_lookup(self):
        sender = PostmarkEmailSender("", "")
        registry = ChannelRegistry()
        registry.register(Channel.EMAIL, sender)

        assert registry.get(Channel.EMAIL) is sender
        assert registry.has("EMAIL")
        assert not registry.has(Channel.SMS)
        assert registry.get(Channel.SMS) is None
        assert registry.channels == frozenset({Channel.EMAIL})

    def test_build_channel_registry(self):
        settings = SimpleNamespace(
            provider_timeout_seconds=5.0,
            postmark_server_token="",
            postmark_from_email="",
            postmark_message_stream="outbound",
            twilio_account_sid="",
            twilio_auth_token="",
            twilio_from_sms="+15550001111",
            twilio_from_whatsapp="",
        )
        registry = build_channel_registry(settings)

        assert registry.channels == frozenset(Channel)
        whatsapp = registry.get(Channel.WHATSAPP)
        assert isinstance(whatsapp, TwilioSender)
        assert whatsapp.whatsapp is True
        assert whatsapp.from_number == "+15550001111"
