"""Member lifecycle stage classification.

Maps status, tenure, recency, risk and commitment onto one of eight habit
lifecycle stages, each paired with a suggested retention play and a short
behavioural interpretation for staff.
"""

from dataclasses import dataclass

from .config import ScoringConfig, StageConfig, default_config
from .models import MemberStage, MembershipStatus, RiskFlag, RiskLevel

STAGE_LABELS: dict[MemberStage, str] = {
    MemberStage.ONBOARDING: "Onboarding vulnerability",
    MemberStage.HABIT_FORMING: "Habit formation",
    MemberStage.STABLE: "Momentum & identity",
    MemberStage.PLATEAU: "Plateau & boredom risk",
    MemberStage.DISENGAGING: "Emotional disengagement",
    MemberStage.AT_RISK: "At-risk & silent quit",
    MemberStage.WIN_BACK: "Win-back window",
    MemberStage.CHURNED: "Churned",
}

STAGE_PLAYS: dict[MemberStage, str] = {
    MemberStage.ONBOARDING: (
        "Nurture first 30 days: check-in calls, goal-setting, first-win celebrations."
    ),
    MemberStage.HABIT_FORMING: (
        "Lock in routine: suggest fixed class times, buddy invites, small rewards for consistency."
    ),
    MemberStage.STABLE: (
        "Reinforce identity: highlight streaks, member spotlights, community events."
    ),
    MemberStage.PLATEAU: "Reignite interest: new goals, challenges, or a different class format.",
    MemberStage.DISENGAGING: (
        "Reconnect personally: 1:1 touchpoint, ask what would make the gym feel essential again."
    ),
    MemberStage.AT_RISK: (
        "Prioritise outreach: personalised message or call before they slip away."
    ),
    MemberStage.WIN_BACK: (
        "Win-back campaign: we-miss-you message, incentive or free class to bring them back."
    ),
    MemberStage.CHURNED: (
        "Optional win-back: targeted offer if they left on good terms; otherwise respect the exit."
    ),
}


@dataclass(frozen=True)
class StageInputs:
    status: MembershipStatus
    churn_risk_score: int
    churn_risk_level: RiskLevel
    commitment_score: int
    habit_decay_velocity: float
    days_since_joined: int
    days_since_last_visit: int | None
    visits_last_30_days: int
    risk_flags: frozenset[RiskFlag] = frozenset()


class MemberStageClassifier:
    """Pure mapping from a scored member to a lifecycle stage."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config: StageConfig = (config or default_config).stages

    def classify(self, inputs: StageInputs) -> MemberStage:
        """Return the member's stage. Rules are evaluated top-down, first match wins:

        1. cancelled, or inactive for long enough -> churned
        2. long lapsed without a forming habit -> win_back
        3. high risk and (lapsed or low commitment) -> at_risk
        4. medium risk or slipping commitment, few visits, not very new -> disengaging
        5. tenured with slipping commitment or flat attendance -> plateau
        6. established, consistent, committed and not decaying -> stable
        7. past the first weeks and visiting recently -> habit_forming
        8. new -> onboarding
        9. fallbacks: at_risk, then win_back, then habit_forming
        """
        cfg = self._config
        days_since = (
            inputs.days_since_last_visit if inputs.days_since_last_visit is not None else 999
        )
        tenure = inputs.days_since_joined
        visits_30 = inputs.visits_last_30_days
        commitment = inputs.commitment_score

        is_new = tenure <= cfg.new_days
        is_very_new = tenure <= cfg.very_new_days
        is_lapsed = days_since >= cfg.lapsed_days
        is_long_lapsed = days_since >= cfg.long_lapsed_days
        is_high_risk = (
            inputs.churn_risk_level == RiskLevel.HIGH
            or inputs.churn_risk_score >= cfg.high_risk_score
        )
        is_medium_risk = inputs.churn_risk_level == RiskLevel.MEDIUM or (
            cfg.medium_risk_score <= inputs.churn_risk_score < cfg.high_risk_score
        )
        is_low_commitment = commitment < cfg.low_commitment
        is_slipping = cfg.low_commitment <= commitment < cfg.healthy_commitment
        has_strong_habit = (
            visits_30 >= cfg.strong_habit_visits_30d and commitment >= cfg.healthy_commitment
        )
        has_forming_habit = visits_30 >= 1 and days_since <= cfg.recent_visit_days

        if inputs.status == MembershipStatus.CANCELLED:
            return MemberStage.CHURNED
        if inputs.status == MembershipStatus.INACTIVE and days_since >= cfg.churned_inactive_days:
            return MemberStage.CHURNED

        if is_long_lapsed and not has_forming_habit:
            return MemberStage.WIN_BACK

        if is_high_risk and (is_lapsed or is_low_commitment):
            return MemberStage.AT_RISK

        if (is_medium_risk or is_slipping) and visits_30 < 2 and not is_very_new:
            return MemberStage.DISENGAGING

        if tenure >= cfg.plateau_tenure_days and (
            is_slipping or (visits_30 <= 2 and days_since <= cfg.lapsed_days)
        ):
            return MemberStage.PLATEAU

        if (
            tenure >= cfg.momentum_tenure_days
            and has_strong_habit
            and inputs.habit_decay_velocity <= 0
        ):
            return MemberStage.STABLE

        if not is_very_new and has_forming_habit and tenure <= cfg.habit_forming_max_tenure_days:
            return MemberStage.HABIT_FORMING

        if is_new:
            return MemberStage.ONBOARDING

        if is_high_risk or is_low_commitment:
            return MemberStage.AT_RISK
        if is_lapsed:
            return MemberStage.WIN_BACK
        return MemberStage.HABIT_FORMING

    def interpret(
        self,
        stage: MemberStage,
        churn_risk_score: int,
        visits_last_30_days: int,
        days_since_last_visit: int | None,
    ) -> str:
        """Short behavioural interpretation for a member profile."""
        play = STAGE_PLAYS[stage]
        days_since = days_since_last_visit if days_since_last_visit is not None else 999

        if stage == MemberStage.CHURNED:
            prefix = "Member has cancelled."
        elif stage == MemberStage.WIN_BACK:
            prefix = "In the win-back window."
        elif stage == MemberStage.AT_RISK:
            if churn_risk_score >= 70:
                prefix = "High churn risk; prioritise contact."
            else:
                prefix = "At-risk; silent quit risk."
        elif stage == MemberStage.DISENGAGING:
            prefix = "Emotional disengagement detected."
        elif stage == MemberStage.PLATEAU:
            prefix = "Plateau or boredom risk."
        elif stage == MemberStage.ONBOARDING:
            prefix = "New member; onboarding critical."
        elif stage == MemberStage.HABIT_FORMING:
            prefix = "Building habit; support consistency."
        elif visits_last_30_days >= 4 and days_since <= 7:
            prefix = "Strong momentum; maintain identity and community."
        else:
            prefix = "Engaged; continue appropriate touchpoints."
        return f"{prefix} {play}"
