"""Pydantic models for the member scoring domain."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class MembershipStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


class RiskFlag(StrEnum):
    NO_RECENT_VISITS = "no_recent_visits"
    RAPID_DECLINE = "rapid_decline"
    LARGE_GAP = "large_gap"
    INCONSISTENT_PATTERN = "inconsistent_pattern"
    NEW_MEMBER_LOW_ATTENDANCE = "new_member_low_attendance"
    DECLINING_FREQUENCY = "declining_frequency"


class RiskLevel(StrEnum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MemberStage(StrEnum):
    ONBOARDING = "onboarding"
    HABIT_FORMING = "habit_forming"
    STABLE = "stable"
    PLATEAU = "plateau"
    DISENGAGING = "disengaging"
    AT_RISK = "at_risk"
    WIN_BACK = "win_back"
    CHURNED = "churned"


# --- Input ---


class MemberSnapshot(BaseModel):
    """Read-only view of a member from the engagement signal store."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    status: MembershipStatus = MembershipStatus.ACTIVE
    joined_date: date | None = None
    last_visit_date: date | None = None
    # Most recent first
    visit_dates: tuple[date, ...] = ()
    consent_email: bool = True
    consent_sms: bool = True
    consent_whatsapp: bool = True
    do_not_contact: bool = False


# --- Scoring output ---


class FactorScores(BaseModel):
    attendance_decay: int = Field(ge=0, le=100, default=0)
    missed_sessions: int = Field(ge=0, le=100, default=0)
    time_gaps: int = Field(ge=0, le=100, default=0)
    decline_velocity: int = Field(ge=0, le=100, default=0)


class ScoreResult(BaseModel):
    score: int = Field(ge=0, le=100)
    # Visits/week lost between the two trailing windows; positive = decaying
    habit_decay_velocity: float = 0.0
    risk_flags: frozenset[RiskFlag] = frozenset()
    factor_scores: FactorScores = Field(default_factory=FactorScores)


class ChurnRisk(BaseModel):
    score: int = Field(ge=0, le=100)
    level: RiskLevel


class MemberAssessment(BaseModel):
    member_id: str
    as_of: date
    commitment: ScoreResult
    churn_risk: ChurnRisk
    stage: MemberStage
    interpretation: str
    suggested_play: str
    days_since_joined: int
    days_since_last_visit: int | None
    visits_last_30_days: int
    primary_risk_reason: str
    scoring_version: str = "commitment-v1"
