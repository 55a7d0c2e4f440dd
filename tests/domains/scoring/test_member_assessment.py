"""Unit tests for the full member assessment."""

from datetime import date, timedelta

import pytest

from retention.domains.scoring.assessment import (
    NO_VISITS_REASON,
    RISK_FLAG_REASONS,
    MemberAssessor,
    primary_risk_reason,
)
from retention.domains.scoring.models import (
    MemberSnapshot,
    MemberStage,
    RiskFlag,
    RiskLevel,
)

AS_OF = date(2026, 3, 10)


def _member(visit_days_ago: list[int], joined_days_ago: int | None = 200) -> MemberSnapshot:
    visits = tuple(sorted((AS_OF - timedelta(days=d) for d in visit_days_ago), reverse=True))
    return MemberSnapshot(
        id="member-1",
        tenant_id="tenant-1",
        first_name="Sam",
        joined_date=AS_OF - timedelta(days=joined_days_ago) if joined_days_ago else None,
        last_visit_date=visits[0] if visits else None,
        visit_dates=visits,
    )


@pytest.fixture
def assessor() -> MemberAssessor:
    return MemberAssessor()


class TestMemberAssessor:
    def test_requires_join_date(self, assessor):
        with pytest.raises(ValueError, match="no join date"):
            assessor.assess(_member([3], joined_days_ago=None), AS_OF)

    def test_lapsed_member(self, assessor):
        assessment = assessor.assess(_member([20]), AS_OF)

        assert assessment.member_id == "member-1"
        assert assessment.as_of == AS_OF
        assert assessment.commitment.score == 10
        assert assessment.churn_risk.score == 100
        assert assessment.churn_risk.level == RiskLevel.HIGH
        assert assessment.stage == MemberStage.AT_RISK
        assert assessment.days_since_last_visit == 20
        assert assessment.visits_last_30_days == 1
        assert assessment.primary_risk_reason == "no visits in over two weeks"
        assert assessment.interpretation.startswith("High churn risk")

    def test_regular_member(self, assessor):
        assessment = assessor.assess(_member(list(range(1, 60, 2))), AS_OF)

        assert assessment.commitment.score >= 90
        assert assessment.churn_risk.level == RiskLevel.NONE
        assert assessment.stage == MemberStage.STABLE
        assert assessment.visits_last_30_days == 15
        assert assessment.primary_risk_reason == ""

    def test_member_without_visits(self, assessor):
        assessment = assessor.assess(_member([]), AS_OF)

        assert assessment.days_since_last_visit is None
        assert assessment.visits_last_30_days == 0
        assert assessment.primary_risk_reason == NO_VISITS_REASON
        assert assessment.churn_risk.score == 85

    def test_future_last_visit_is_rederived(self, assessor):
        member = MemberSnapshot(
            id="member-1",
            tenant_id="tenant-1",
            joined_date=AS_OF - timedelta(days=200),
            last_visit_date=AS_OF + timedelta(days=3),
            visit_dates=(AS_OF + timedelta(days=3), AS_OF - timedelta(days=20)),
        )
        assessment = assessor.assess(member, AS_OF)
        assert assessment.days_since_last_visit == 20

    def test_expected_visits_override(self):
        strict = MemberAssessor().assess(_member([20]), AS_OF)
        relaxed = MemberAssessor(expected_visits_per_week=1.0).assess(_member([20]), AS_OF)
        assert (
            relaxed.commitment.factor_scores.missed_sessions
            > strict.commitment.factor_scores.missed_sessions
        )


class TestPrimaryRiskReason:
    def test_precedence(self):
        flags = frozenset({RiskFlag.LARGE_GAP, RiskFlag.RAPID_DECLINE})
        assert primary_risk_reason(flags, has_visits=True) == RISK_FLAG_REASONS[
            RiskFlag.RAPID_DECLINE
        ]

    def test_no_visits_wins(self):
        flags = frozenset({RiskFlag.NEW_MEMBER_LOW_ATTENDANCE})
        assert primary_risk_reason(flags, has_visits=False) == NO_VISITS_REASON

    def test_no_flags(self):
        assert primary_risk_reason(frozenset(), has_visits=True) == ""
