"""Pydantic models for plays, interventions and delivery updates."""

import re
from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from retention.domains.scoring.models import MemberAssessment, MemberSnapshot

# --- Enums ---


class Channel(StrEnum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"


class TriggerType(StrEnum):
    DAILY_BATCH = "DAILY_BATCH"
    EVENT_WEBHOOK = "EVENT_WEBHOOK"


class InterventionStatus(StrEnum):
    CANDIDATE = "CANDIDATE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class MessageEventType(StrEnum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class DeliveryEventType(StrEnum):
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class ReconcileOutcome(StrEnum):
    APPLIED = "applied"
    IGNORED_EVENT = "ignored_event"
    UNKNOWN_MESSAGE = "unknown_message"
    NO_OP = "no_op"


# --- Templates ---

# Variables a play template may reference, in snake_case
TEMPLATE_VARIABLES: frozenset[str] = frozenset(
    {
        "first_name",
        "last_name",
        "full_name",
        "gym_name",
        "primary_risk_reason",
        "last_visit_date",
        "days_since_last_visit",
        "risk_score",
        "risk_level",
        "commitment_score",
        "member_stage",
    }
)

TEMPLATE_TOKEN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_variable(name: str) -> str:
    """firstName -> first_name; snake_case names pass through."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def unknown_template_variables(template: str | None) -> list[str]:
    if not template:
        return []
    return sorted(
        {
            name
            for name in TEMPLATE_TOKEN.findall(template)
            if normalize_variable(name) not in TEMPLATE_VARIABLES
        }
    )


# --- Play configuration ---

_HHMM = re.compile(r"^\d{1,2}:\d{2}$")


def _validate_hhmm(value: str) -> str:
    if not _HHMM.match(value):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, minutes = (int(p) for p in value.split(":"))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Time of day out of range: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def _dedupe_channels(value: list[Channel]) -> list[Channel]:
    return list(dict.fromkeys(value))


def _validate_template(value: str) -> str:
    unknown = unknown_template_variables(value)
    if unknown:
        raise ValueError(f"Unknown template variables: {', '.join(unknown)}")
    return value


TimeOfDay = Annotated[str, AfterValidator(_validate_hhmm)]
ChannelList = Annotated[list[Channel], Field(min_length=1), AfterValidator(_dedupe_channels)]
TemplateSubject = Annotated[str, Field(max_length=500), AfterValidator(_validate_template)]
TemplateBody = Annotated[
    str, Field(min_length=1, max_length=10000), AfterValidator(_validate_template)
]
PlayName = Annotated[str, Field(min_length=1, max_length=200)]
RiskScore = Annotated[int, Field(ge=0, le=100)]
WeeklyCap = Annotated[int, Field(ge=1, le=20)]
CooldownDays = Annotated[int, Field(ge=0, le=30)]


class PlayCreate(BaseModel):
    """Request body for creating a play. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tenant_id: str = Field(min_length=1)
    name: PlayName
    description: str | None = Field(default=None, max_length=2000)
    is_active: bool = True
    trigger_type: TriggerType = TriggerType.DAILY_BATCH
    min_risk_score: RiskScore
    channels: ChannelList
    requires_approval: bool = False
    quiet_hours_start: TimeOfDay = "21:00"
    quiet_hours_end: TimeOfDay = "08:00"
    max_messages_per_member_per_week: WeeklyCap = 2
    cooldown_days: CooldownDays = 3
    template_subject: TemplateSubject | None = None
    template_body: TemplateBody


class PlayUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: PlayName | None = None
    description: str | None = Field(default=None, max_length=2000)
    is_active: bool | None = None
    trigger_type: TriggerType | None = None
    min_risk_score: RiskScore | None = None
    channels: ChannelList | None = None
    requires_approval: bool | None = None
    quiet_hours_start: TimeOfDay | None = None
    quiet_hours_end: TimeOfDay | None = None
    max_messages_per_member_per_week: WeeklyCap | None = None
    cooldown_days: CooldownDays | None = None
    template_subject: TemplateSubject | None = None
    template_body: TemplateBody | None = None

    @model_validator(mode="after")
    def _reject_null_required(self) -> "PlayUpdate":
        nullable = {"description", "template_subject"}
        for name in sorted(self.model_fields_set - nullable):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class PlayConfig(BaseModel):
    """Read-only view of a play used by the engine during a run."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    tenant_id: str
    name: str
    is_active: bool = True
    trigger_type: TriggerType = TriggerType.DAILY_BATCH
    min_risk_score: int = Field(ge=0, le=100)
    channels: tuple[Channel, ...]
    requires_approval: bool = False
    quiet_hours_start: str = "21:00"
    quiet_hours_end: str = "08:00"
    max_messages_per_member_per_week: int = 2
    cooldown_days: int = 3
    template_subject: str | None = None
    template_body: str


class PlayView(PlayConfig):
    description: str | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


# --- Engine pipeline ---


class TenantContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    timezone: str


class Candidate(BaseModel):
    """A (member, play) pair proposed by the matcher, with its chosen channel."""

    model_config = ConfigDict(frozen=True)

    member: MemberSnapshot
    play: PlayConfig
    channel: Channel
    assessment: MemberAssessment
    reason: str


class GateDecision(BaseModel):
    allowed: bool
    reason: str | None = None
    # Set when the send must wait for quiet hours to end
    hold_until: datetime | None = None


class RenderedMessage(BaseModel):
    subject: str | None = None
    body: str


class DeliveryUpdate(BaseModel):
    """Provider-agnostic delivery callback."""

    provider: str
    provider_message_id: str
    event_type: DeliveryEventType | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ReconcileResult(BaseModel):
    outcome: ReconcileOutcome
    intervention_id: str | None = None
    status: InterventionStatus | None = None


class RunResult(BaseModel):
    tenant_id: str
    created: int = 0
    scheduled: int = 0
    pending_approval: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


# --- Read views ---


class MessageEventView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: MessageEventType
    payload: dict[str, Any] | None = None
    created_at: datetime


class PlaySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class MemberSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None


class InterventionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    member_id: str
    play_id: str
    channel: Channel
    status: InterventionStatus
    reason: str | None = None
    rendered_subject: str | None = None
    rendered_body: str
    provider_message_id: str | None = None
    due_date: date
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    play: PlaySummary | None = None
    member: MemberSummary | None = None
    events: list[MessageEventView] = Field(default_factory=list)


class InterventionPage(BaseModel):
    interventions: list[InterventionView]
    total: int
