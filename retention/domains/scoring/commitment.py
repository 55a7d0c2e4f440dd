"""Commitment score engine.

Rule-based 0-100 measure of attendance consistency relative to expectation.
Four factors are blended and then multiplied by a time-decay factor so the
score keeps falling while a member stays away:

1. Attendance decay - recent 30 days vs the previous 30 (or tenure halves
   for members younger than 60 days)
2. Missed sessions - actual vs expected visits, tenure-adjusted for new members
3. Time gaps - average, worst and current gap between visits
4. Decline velocity - visit trend across up to three trailing windows

Score bands: 0-30 low, 31-60 forming, 61-80 established, 81-100 strong.
Everything is computed relative to the ``as_of`` date passed in; the wall
clock is never read.
"""

from collections.abc import Sequence
from datetime import date, timedelta

import structlog

from .config import CommitmentConfig, ScoringConfig, default_config
from .models import FactorScores, RiskFlag, ScoreResult

logger = structlog.get_logger()


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def _days_between(later: date, earlier: date) -> int:
    return (later - earlier).days


def _count_between(visits: Sequence[date], start: date, end: date, end_inclusive: bool) -> int:
    if end_inclusive:
        return sum(1 for v in visits if start <= v <= end)
    return sum(1 for v in visits if start <= v < end)


def _gaps(visits: Sequence[date]) -> list[int]:
    """Gaps in days between consecutive visits (visits sorted most recent first)."""
    return [_days_between(visits[i], visits[i + 1]) for i in range(len(visits) - 1)]


def time_decay_multiplier(
    days_since_last_visit: int | None, decay_per_day: float = 0.018
) -> float:
    """Multiplier in [0, 1]: 1.0 for day 0-1, then a linear per-day decay."""
    if days_since_last_visit is None or days_since_last_visit <= 1:
        return 1.0
    return round(max(0.0, 1 - (days_since_last_visit - 1) * decay_per_day), 2)


class CommitmentScorer:
    """Converts visit history into a commitment ScoreResult."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config: CommitmentConfig = (config or default_config).commitment

    def score(
        self,
        joined_date: date,
        last_visit_date: date | None,
        visit_dates: Sequence[date],
        as_of: date,
        expected_visits_per_week: float | None = None,
    ) -> ScoreResult:
        """Compute the commitment score as of a given date.

        Args:
            joined_date: Date the member joined.
            last_visit_date: Most recent visit, derived from visit_dates if None.
            visit_dates: All known visit dates, any order.
            as_of: Reference date; later visits are ignored.
            expected_visits_per_week: Override for the policy default.

        Returns:
            ScoreResult with integer score in [0, 100].
        """
        cfg = self._config
        visits = sorted((v for v in visit_dates if v <= as_of), reverse=True)
        if last_visit_date is None or last_visit_date > as_of:
            last_visit_date = visits[0] if visits else None

        days_since_joined = max(0, _days_between(as_of, joined_date))
        days_since_last = (
            max(0, _days_between(as_of, last_visit_date)) if last_visit_date else None
        )

        if not visits:
            return ScoreResult(
                score=0,
                habit_decay_velocity=0.0,
                risk_flags=self._risk_flags([], None, days_since_joined, 0.0, as_of),
                factor_scores=FactorScores(),
            )

        expected = expected_visits_per_week or cfg.expected_visits_per_week

        attendance = self._attendance_decay(visits, days_since_joined, as_of)
        missed = self._missed_sessions(visits, expected, days_since_joined, days_since_last, as_of)
        gaps = self._time_gaps(visits, days_since_last, as_of)
        velocity_score, decay_velocity = self._decline_velocity(visits, days_since_joined, as_of)

        w = cfg.weights
        raw = (
            attendance * w.attendance_decay
            + missed * w.missed_sessions
            + gaps * w.time_gaps
            + velocity_score * w.decline_velocity
        )
        score = raw * time_decay_multiplier(days_since_last, cfg.decay_per_day)

        result = ScoreResult(
            score=int(_clamp(round(score))),
            habit_decay_velocity=decay_velocity,
            risk_flags=self._risk_flags(
                visits, days_since_last, days_since_joined, decay_velocity, as_of
            ),
            factor_scores=FactorScores(
                attendance_decay=attendance,
                missed_sessions=missed,
                time_gaps=gaps,
                decline_velocity=velocity_score,
            ),
        )

        logger.debug(
            "commitment_scored",
            score=result.score,
            habit_decay_velocity=result.habit_decay_velocity,
            risk_flags=sorted(result.risk_flags),
        )
        return result

    def _attendance_decay(self, visits: list[date], days_since_joined: int, as_of: date) -> int:
        """Factor 1: recent attendance relative to the period before it."""
        cfg = self._config
        window_start = as_of - timedelta(days=cfg.window_days)
        previous_start = as_of - timedelta(days=cfg.window_days * 2)

        recent = _count_between(visits, window_start, as_of, end_inclusive=True)
        previous = _count_between(visits, previous_start, window_start, end_inclusive=False)

        if days_since_joined < cfg.established_after_days:
            # Compare the first half of the membership with the second
            midpoint = as_of - timedelta(days=days_since_joined // 2)
            first_half = sum(1 for v in visits if v < midpoint)
            second_half = sum(1 for v in visits if v >= midpoint)
            if first_half == 0:
                return int(min(100, recent * 10))
            return int(round(_clamp(second_half / first_half * 100)))

        if previous == 0:
            return int(min(100, recent * 15))

        score = min(100.0, recent / previous * 100)
        if recent >= 8:
            score = min(100.0, score + 20)
        elif recent >= 4:
            score = min(100.0, score + 10)
        return int(max(0, round(score)))

    def _missed_sessions(
        self,
        visits: list[date],
        expected_per_week: float,
        days_since_joined: int,
        days_since_last: int | None,
        as_of: date,
    ) -> int:
        """Factor 2: compliance with expected visits over the trailing window."""
        cfg = self._config
        window_days = cfg.window_days
        if days_since_joined < cfg.onboarding_window_days:
            window_days = max(days_since_joined, cfg.min_expectation_days)

        expected = expected_per_week / 7 * window_days
        actual = _count_between(
            visits, as_of - timedelta(days=cfg.window_days), as_of, end_inclusive=True
        )

        score = min(100.0, actual / expected * 100) if expected > 0 else 100.0
        if days_since_last is not None and days_since_last > cfg.missed_sessions_recency_days:
            score *= 0.5
        return int(max(0, round(score)))

    def _time_gaps(self, visits: list[date], days_since_last: int | None, as_of: date) -> int:
        """Factor 3: regularity of visits and the size of the current gap."""
        if len(visits) == 1:
            days = _days_between(as_of, visits[0])
            if days <= 1:
                return 55
            if days <= 7:
                return max(10, 55 - days * 5)
            if days <= 14:
                return max(5, 20 - (days - 7) * 2)
            if days <= 21:
                return max(2, 6 - (days - 14))
            return max(0, 2 - days // 30)

        gaps = _gaps(visits)
        avg_gap = sum(gaps) / len(gaps)
        max_gap = max(gaps)

        if avg_gap <= 3:
            score = 100
        elif avg_gap <= 5:
            score = 90
        elif avg_gap <= 7:
            score = 75
        elif avg_gap <= 10:
            score = 60
        elif avg_gap <= 14:
            score = 40
        elif avg_gap <= 21:
            score = 20
        else:
            score = 10

        if max_gap > 21:
            score -= 30
        elif max_gap > 14:
            score -= 15

        if days_since_last is not None:
            if days_since_last > 21:
                score -= 40
            elif days_since_last > 14:
                score -= 25
            elif days_since_last > 7:
                score -= 10

        return max(0, score)

    def _decline_velocity(
        self, visits: list[date], days_since_joined: int, as_of: date
    ) -> tuple[int, float]:
        """Factor 4: visit trend across trailing windows.

        Returns the 0-100 factor score (50 = steady) and the habit decay
        velocity in visits per week, positive when attendance is falling.
        """
        cfg = self._config
        if len(visits) < 4:
            return 50, 0.0

        w = cfg.window_days
        p1_start = as_of - timedelta(days=w)
        p2_start = as_of - timedelta(days=w * 2)
        p3_start = as_of - timedelta(days=w * 3)

        period1 = _count_between(visits, p1_start, as_of, end_inclusive=True)
        period2 = _count_between(visits, p2_start, p1_start, end_inclusive=False)
        period3 = (
            _count_between(visits, p3_start, p2_start, end_inclusive=False)
            if days_since_joined >= w * 3
            else None
        )

        if period3 is not None and period2 > 0 and period3 > 0:
            trend = ((period1 - period2) + (period2 - period3)) / 2
        else:
            trend = float(period1 - period2)

        score = _clamp(50 + trend * 10)
        decay_velocity = round(-trend / cfg.weeks_per_window, 1)
        # Avoid a signed zero leaking into serialized output
        return int(round(score)), decay_velocity + 0.0

    def _risk_flags(
        self,
        visits: list[date],
        days_since_last: int | None,
        days_since_joined: int,
        decay_velocity: float,
        as_of: date,
    ) -> frozenset[RiskFlag]:
        cfg = self._config
        window_start = as_of - timedelta(days=cfg.window_days)
        previous_start = as_of - timedelta(days=cfg.window_days * 2)
        recent = sum(1 for v in visits if v >= window_start)
        previous = _count_between(visits, previous_start, window_start, end_inclusive=False)

        gaps = _gaps(visits)
        max_gap = max(gaps) if gaps else 0
        variance = 0.0
        if len(gaps) > 1:
            mean = sum(gaps) / len(gaps)
            variance = sum((g - mean) ** 2 for g in gaps) / len(gaps)

        flags: set[RiskFlag] = set()
        if days_since_last is not None and days_since_last > cfg.no_recent_visit_days:
            flags.add(RiskFlag.NO_RECENT_VISITS)
        if previous > 0 and recent < previous * cfg.rapid_decline_ratio:
            flags.add(RiskFlag.RAPID_DECLINE)
        if max_gap > cfg.large_gap_days or (
            days_since_last is not None and days_since_last > cfg.large_gap_days
        ):
            flags.add(RiskFlag.LARGE_GAP)
        if variance > cfg.inconsistent_gap_variance:
            flags.add(RiskFlag.INCONSISTENT_PATTERN)
        if days_since_joined < cfg.new_member_days and recent < cfg.new_member_min_visits:
            flags.add(RiskFlag.NEW_MEMBER_LOW_ATTENDANCE)
        if decay_velocity > cfg.declining_velocity_threshold:
            flags.add(RiskFlag.DECLINING_FREQUENCY)
        return frozenset(flags)
