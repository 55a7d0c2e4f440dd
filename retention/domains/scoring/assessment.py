"""Full member assessment: commitment, churn risk, stage and interpretation."""

from datetime import date, timedelta

import structlog

from .churn import ChurnRiskScorer
from .commitment import CommitmentScorer
from .config import ScoringConfig, default_config
from .models import MemberAssessment, MemberSnapshot, RiskFlag
from .stages import STAGE_PLAYS, MemberStageClassifier, StageInputs

logger = structlog.get_logger()

# Highest precedence first; the first flag present becomes the primary reason
RISK_FLAG_REASONS: dict[RiskFlag, str] = {
    RiskFlag.NO_RECENT_VISITS: "no visits in over two weeks",
    RiskFlag.RAPID_DECLINE: "attendance has dropped sharply",
    RiskFlag.LARGE_GAP: "a long gap between visits",
    RiskFlag.DECLINING_FREQUENCY: "visit frequency is declining",
    RiskFlag.NEW_MEMBER_LOW_ATTENDANCE: "few visits since joining",
    RiskFlag.INCONSISTENT_PATTERN: "an irregular visit pattern",
}

NO_VISITS_REASON = "no visits recorded yet"


def primary_risk_reason(flags: frozenset[RiskFlag], has_visits: bool) -> str:
    if not has_visits:
        return NO_VISITS_REASON
    for flag, reason in RISK_FLAG_REASONS.items():
        if flag in flags:
            return reason
    return ""


class MemberAssessor:
    """Runs the scorers and the stage classifier over one member snapshot."""

    def __init__(
        self,
        config: ScoringConfig | None = None,
        expected_visits_per_week: float | None = None,
    ) -> None:
        self.config = config or default_config
        self.expected_visits_per_week = expected_visits_per_week
        self._commitment = CommitmentScorer(self.config)
        self._churn = ChurnRiskScorer(self.config)
        self._classifier = MemberStageClassifier(self.config)

    def assess(self, member: MemberSnapshot, as_of: date) -> MemberAssessment:
        """Assess a member as of a date.

        Raises:
            ValueError: if the member has no join date and cannot be scored.
        """
        if member.joined_date is None:
            raise ValueError(f"Member {member.id} has no join date")

        visits = sorted((v for v in member.visit_dates if v <= as_of), reverse=True)
        last_visit = member.last_visit_date
        if last_visit is None or last_visit > as_of:
            last_visit = visits[0] if visits else None
        elif visits and visits[0] > last_visit:
            last_visit = visits[0]

        window_start = as_of - timedelta(days=self.config.commitment.window_days)
        visits_30 = sum(1 for v in visits if v >= window_start)
        days_since_joined = max(0, (as_of - member.joined_date).days)
        days_since_last = max(0, (as_of - last_visit).days) if last_visit else None

        commitment = self._commitment.score(
            joined_date=member.joined_date,
            last_visit_date=last_visit,
            visit_dates=visits,
            as_of=as_of,
            expected_visits_per_week=self.expected_visits_per_week,
        )
        churn = self._churn.score(
            last_visit_date=last_visit,
            joined_date=member.joined_date,
            commitment_score=commitment.score,
            as_of=as_of,
            visits_last_30_days=visits_30,
        )
        stage = self._classifier.classify(
            StageInputs(
                status=member.status,
                churn_risk_score=churn.score,
                churn_risk_level=churn.level,
                commitment_score=commitment.score,
                habit_decay_velocity=commitment.habit_decay_velocity,
                days_since_joined=days_since_joined,
                days_since_last_visit=days_since_last,
                visits_last_30_days=visits_30,
                risk_flags=commitment.risk_flags,
            )
        )

        assessment = MemberAssessment(
            member_id=member.id,
            as_of=as_of,
            commitment=commitment,
            churn_risk=churn,
            stage=stage,
            interpretation=self._classifier.interpret(
                stage, churn.score, visits_30, days_since_last
            ),
            suggested_play=STAGE_PLAYS[stage],
            days_since_joined=days_since_joined,
            days_since_last_visit=days_since_last,
            visits_last_30_days=visits_30,
            primary_risk_reason=primary_risk_reason(commitment.risk_flags, bool(visits)),
            scoring_version=self.config.scoring_version,
        )

        logger.debug(
            "member_assessed",
            member_id=member.id,
            commitment_score=commitment.score,
            churn_risk_score=churn.score,
            stage=stage.value,
        )
        return assessment
