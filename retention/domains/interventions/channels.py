"""Channel senders: one implementation per outbound channel.

Every sender exposes ``send(to, subject, body) -> provider_message_id`` and
raises ``DispatchError`` when the provider rejects the message. Senders
without credentials stub the send and log a warning so local environments
can run the full pipeline.
"""

import uuid
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import httpx
import structlog

from .models import Channel

logger = structlog.get_logger()

POSTMARK_API_URL = "https://api.postmarkapp.com/email"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


class DispatchError(RuntimeError):
    """The provider refused or failed to accept a message."""


@runtime_checkable
class ChannelSender(Protocol):
    async def send(self, to: str, subject: str | None, body: str) -> str: ...


def _stub_id() -> str:
    return f"stub-{uuid.uuid4()}"


class _HttpSender:
    provider = "http"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    async def _post(self, url: str, **kwargs) -> dict:
        try:
            if self._client is not None:
                response = await self._client.post(url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise DispatchError(f"{self.provider} request failed: {e}") from e

        if response.is_error:
            raise DispatchError(
                f"{self.provider} rejected message: {response.status_code} {response.text}"
            )
        try:
            return response.json()
        except ValueError:
            return {}


class PostmarkEmailSender(_HttpSender):
    provider = "postmark"

    def __init__(
        self,
        server_token: str,
        from_email: str,
        message_stream: str = "outbound",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client, timeout)
        self.server_token = server_token
        self.from_email = from_email
        self.message_stream = message_stream

    @property
    def configured(self) -> bool:
        return bool(self.server_token and self.from_email)

    async def send(self, to: str, subject: str | None, body: str) -> str:
        if not self.configured:
            logger.warning("email_not_configured_stubbing_send", to=to)
            return _stub_id()

        data = await self._post(
            POSTMARK_API_URL,
            headers={
                "Accept": "application/json",
                "X-Postmark-Server-Token": self.server_token,
            },
            json={
                "From": self.from_email,
                "To": to,
                "Subject": subject or "",
                "TextBody": body,
                "MessageStream": self.message_stream,
            },
        )
        message_id = data.get("MessageID")
        if not message_id:
            raise DispatchError("postmark response had no MessageID")
        return str(message_id)


class TwilioSender(_HttpSender):
    """Twilio Messages API; WhatsApp differs only in the address prefix."""

    provider = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        whatsapp: bool = False,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client, timeout)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.whatsapp = whatsapp

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _address(self, number: str) -> str:
        if self.whatsapp and not number.startswith("whatsapp:"):
            return f"whatsapp:{number}"
        return number

    async def send(self, to: str, subject: str | None, body: str) -> str:
        if not self.configured:
            logger.warning(
                "twilio_not_configured_stubbing_send", to=to, whatsapp=self.whatsapp
            )
            return _stub_id()

        data = await self._post(
            TWILIO_API_URL.format(account_sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={
                "To": self._address(to),
                "From": self._address(self.from_number),
                "Body": body,
            },
        )
        sid = data.get("sid")
        if not sid:
            raise DispatchError("twilio response had no sid")
        return str(sid)


class ChannelRegistry:
    """Channel -> sender lookup."""

    def __init__(self, senders: Mapping[Channel, ChannelSender] | None = None) -> None:
        self._senders: dict[Channel, ChannelSender] = dict(senders or {})

    def register(self, channel: Channel, sender: ChannelSender) -> None:
        self._senders[Channel(channel)] = sender

    def get(self, channel: Channel) -> ChannelSender | None:
        return self._senders.get(Channel(channel))

    def has(self, channel: Channel) -> bool:
        return Channel(channel) in self._senders

    @property
    def channels(self) -> frozenset[Channel]:
        return frozenset(self._senders)


def build_channel_registry(settings, client: httpx.AsyncClient | None = None) -> ChannelRegistry:
    """Register the production senders for every channel."""
    timeout = settings.provider_timeout_seconds
    return ChannelRegistry(
        {
            Channel.EMAIL: PostmarkEmailSender(
                server_token=settings.postmark_server_token,
                from_email=settings.postmark_from_email,
                message_stream=settings.postmark_message_stream,
                client=client,
                timeout=timeout,
            ),
            Channel.SMS: TwilioSender(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_from_sms,
                client=client,
                timeout=timeout,
            ),
            Channel.WHATSAPP: TwilioSender(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_from_whatsapp or settings.twilio_from_sms,
                whatsapp=True,
                client=client,
                timeout=timeout,
            ),
        }
    )
