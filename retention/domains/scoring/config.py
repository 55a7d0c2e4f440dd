"""Member scoring configuration with sensible defaults.

Commitment weights, decay curves, churn-risk bands and lifecycle stage
thresholds. Defaults reflect a typical gym member expected to train about
twice a week.
"""

import os
from dataclasses import dataclass, field


@dataclass
class CommitmentWeights:
    """Relative weight of each commitment factor. Must sum to 1.0."""

    attendance_decay: float = 0.35  # how attendance is trending
    missed_sessions: float = 0.25  # consistency vs expectation
    time_gaps: float = 0.25  # gaps disrupt habits
    decline_velocity: float = 0.15  # rate of decline signals urgency

    def __post_init__(self) -> None:
        total = (
            self.attendance_decay + self.missed_sessions + self.time_gaps + self.decline_velocity
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(
                f"Commitment weights must sum to 1.0, got {total:.4f}. "
                f"AttendanceDecay={self.attendance_decay}, "
                f"MissedSessions={self.missed_sessions}, "
                f"TimeGaps={self.time_gaps}, "
                f"DeclineVelocity={self.decline_velocity}"
            )


@dataclass
class CommitmentConfig:
    weights: CommitmentWeights = field(default_factory=CommitmentWeights)

    # Policy constant used when a member has no explicit expectation
    expected_visits_per_week: float = 2.0

    # Trailing window length for attendance comparisons
    window_days: int = 30
    # Members younger than this compare the two halves of their tenure
    established_after_days: int = 60
    # New members are only expected to have attended for the days they've had
    onboarding_window_days: int = 30
    # Never expect less than a week's worth of attendance
    min_expectation_days: int = 7

    # Time decay: 1.0 up to one day since last visit, then this much per day
    decay_per_day: float = 0.018

    # Missed sessions halves once the last visit is older than this
    missed_sessions_recency_days: int = 14

    # Risk flag thresholds
    no_recent_visit_days: int = 14
    large_gap_days: int = 21
    rapid_decline_ratio: float = 0.5
    inconsistent_gap_variance: float = 50.0
    new_member_days: int = 30
    new_member_min_visits: int = 2
    declining_velocity_threshold: float = 0.5  # visits/week lost

    # 30-day windows per "week" when normalising velocity
    weeks_per_window: float = 4.3


@dataclass
class ChurnRiskConfig:
    default_commitment_score: int = 50

    # Each full inactivity period multiplies risk
    inactivity_period_days: int = 14
    inactivity_multiplier: float = 1.2

    # No visit history at all
    never_visited_score: int = 85
    new_member_days: int = 14
    new_member_never_visited_floor: int = 50

    # Level bands on the risk score
    high_cutoff: int = 70
    medium_cutoff: int = 40
    low_cutoff: int = 20  # strictly above => low


@dataclass
class StageConfig:
    very_new_days: int = 14
    new_days: int = 30
    lapsed_days: int = 14
    long_lapsed_days: int = 30
    churned_inactive_days: int = 90
    high_risk_score: int = 65
    medium_risk_score: int = 40
    low_commitment: int = 40
    healthy_commitment: int = 60
    plateau_tenure_days: int = 90
    momentum_tenure_days: int = 60
    habit_forming_max_tenure_days: int = 90
    strong_habit_visits_30d: int = 3
    recent_visit_days: int = 7


@dataclass
class ScoringConfig:
    commitment: CommitmentConfig = field(default_factory=CommitmentConfig)
    churn: ChurnRiskConfig = field(default_factory=ChurnRiskConfig)
    stages: StageConfig = field(default_factory=StageConfig)

    scoring_version: str = "commitment-v1"

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Load config with environment variable overrides (SCORING_ prefix)."""
        config = cls()
        weights = config.commitment.weights

        if v := os.getenv("SCORING_ATTENDANCE_DECAY_WEIGHT"):
            weights.attendance_decay = float(v)
        if v := os.getenv("SCORING_MISSED_SESSIONS_WEIGHT"):
            weights.missed_sessions = float(v)
        if v := os.getenv("SCORING_TIME_GAPS_WEIGHT"):
            weights.time_gaps = float(v)
        if v := os.getenv("SCORING_DECLINE_VELOCITY_WEIGHT"):
            weights.decline_velocity = float(v)
        if v := os.getenv("SCORING_EXPECTED_VISITS_PER_WEEK"):
            config.commitment.expected_visits_per_week = float(v)
        if v := os.getenv("SCORING_HIGH_RISK_CUTOFF"):
            config.churn.high_cutoff = int(v)
        if v := os.getenv("SCORING_MEDIUM_RISK_CUTOFF"):
            config.churn.medium_cutoff = int(v)

        # Re-validate after overrides
        weights.__post_init__()
        return config


default_config = ScoringConfig()
