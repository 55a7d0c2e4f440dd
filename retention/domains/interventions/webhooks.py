"""Provider webhook adapters.

Each adapter turns a provider's native callback into a ``DeliveryUpdate``
so the reconciler never sees provider payload shapes.
"""

from collections.abc import Mapping
from typing import Any

from .models import DeliveryEventType, DeliveryUpdate

POSTMARK_RECORD_TYPES: dict[str, DeliveryEventType] = {
    "Delivery": DeliveryEventType.DELIVERED,
    "Open": DeliveryEventType.DELIVERED,
    "Bounce": DeliveryEventType.FAILED,
    "SpamComplaint": DeliveryEventType.FAILED,
}

TWILIO_STATUSES: dict[str, DeliveryEventType] = {
    "delivered": DeliveryEventType.DELIVERED,
    "read": DeliveryEventType.DELIVERED,
    "failed": DeliveryEventType.FAILED,
    "undelivered": DeliveryEventType.FAILED,
}


class WebhookPayloadError(ValueError):
    """The webhook body is malformed or lacks a message id."""


def parse_postmark(payload: Any) -> DeliveryUpdate:
    if not isinstance(payload, Mapping):
        raise WebhookPayloadError("Postmark payload must be a JSON object")

    message_id = payload.get("MessageID")
    if not message_id or not isinstance(message_id, str):
        raise WebhookPayloadError("Postmark payload missing MessageID")

    record_type = payload.get("RecordType")
    event_type = POSTMARK_RECORD_TYPES.get(record_type) if isinstance(record_type, str) else None
    return DeliveryUpdate(
        provider="postmark",
        provider_message_id=message_id,
        event_type=event_type,
        raw=dict(payload),
    )


def parse_twilio(form: Mapping[str, Any]) -> DeliveryUpdate:
    message_sid = form.get("MessageSid") or form.get("SmsSid")
    if not message_sid:
        raise WebhookPayloadError("Twilio payload missing MessageSid")

    status = str(form.get("MessageStatus") or form.get("SmsStatus") or "").lower()
    return DeliveryUpdate(
        provider="twilio",
        provider_message_id=str(message_sid),
        event_type=TWILIO_STATUSES.get(status),
        raw={k: v for k, v in form.items()},
    )
