"""Churn risk scoring.

Combines commitment and recency into a 0-100 risk score:

- base risk is the inverted commitment score (lower commitment = higher risk)
- every full 14 days since the last visit multiplies risk by 1.2
- a month without any visit floors risk at the medium band
- no visit history at all is high risk (medium for members still in their
  first two weeks), never zero

The level is read off the final score: >=70 high, >=40 medium, >20 low.
"""

from datetime import date

from .config import ChurnRiskConfig, ScoringConfig, default_config
from .models import ChurnRisk, RiskLevel


class ChurnRiskScorer:
    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config: ChurnRiskConfig = (config or default_config).churn

    def score(
        self,
        last_visit_date: date | None,
        joined_date: date,
        commitment_score: int | None,
        as_of: date,
        visits_last_30_days: int | None = None,
    ) -> ChurnRisk:
        cfg = self._config
        days_since_joined = max(0, (as_of - joined_date).days)
        is_new = days_since_joined <= cfg.new_member_days
        commitment = (
            commitment_score if commitment_score is not None else cfg.default_commitment_score
        )

        if last_visit_date is None:
            if is_new:
                risk = max(float(cfg.new_member_never_visited_floor), 100.0 - commitment)
            else:
                risk = float(cfg.never_visited_score)
            return self._result(risk)

        days_since_last = max(0, (as_of - last_visit_date).days)
        risk = 100.0 - commitment

        periods = days_since_last // cfg.inactivity_period_days
        if periods > 0:
            risk *= cfg.inactivity_multiplier**periods

        if visits_last_30_days == 0 and not is_new:
            risk = max(risk, float(cfg.medium_cutoff))

        return self._result(risk)

    def level_for(self, score: int) -> RiskLevel:
        cfg = self._config
        if score >= cfg.high_cutoff:
            return RiskLevel.HIGH
        if score >= cfg.medium_cutoff:
            return RiskLevel.MEDIUM
        if score > cfg.low_cutoff:
            return RiskLevel.LOW
        return RiskLevel.NONE

    def _result(self, risk: float) -> ChurnRisk:
        score = int(max(0, min(100, round(risk))))
        return ChurnRisk(score=score, level=self.level_for(score))
