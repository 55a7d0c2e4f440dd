"""Messaging policy gate.

Checks run in a fixed order and the first failure excludes the candidate:

1. do-not-contact
2. an intervention already exists for (member, play, due date)
3. cooldown: same play to the same member within ``cooldown_days``
4. weekly cap: member already has the play's max messages in the trailing week
5. a sender is registered for the chosen channel

Exclusions are policy outcomes, not errors. Quiet hours never exclude: an
allowed candidate inside quiet hours carries ``hold_until``.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from . import repository
from .channels import ChannelRegistry
from .config import EngineConfig
from .models import Candidate, GateDecision, PlayConfig
from .quiet_hours import is_in_quiet_hours, next_allowed_send_time

logger = structlog.get_logger()


def quiet_hours_hold(play: PlayConfig, tz: ZoneInfo, now: datetime) -> datetime | None:
    """Next allowed send time if ``now`` is inside the play's quiet hours."""
    if is_in_quiet_hours(now, play.quiet_hours_start, play.quiet_hours_end, tz):
        return next_allowed_send_time(now, play.quiet_hours_start, play.quiet_hours_end, tz)
    return None


class PolicyGate:
    def __init__(self, registry: ChannelRegistry, config: EngineConfig) -> None:
        self.registry = registry
        self.config = config

    async def evaluate(
        self,
        session: AsyncSession,
        candidate: Candidate,
        tz: ZoneInfo,
        due_date: date,
        now: datetime,
    ) -> GateDecision:
        member, play = candidate.member, candidate.play

        if member.do_not_contact:
            return self._exclude(candidate, "Member has do-not-contact set")

        if await repository.exists_for_due_date(
            session, member.tenant_id, member.id, play.id, due_date
        ):
            return self._exclude(candidate, f"Already has an intervention for {due_date}")

        if play.cooldown_days > 0 and await repository.has_recent_for_play(
            session, member.id, play.id, now - timedelta(days=play.cooldown_days)
        ):
            return self._exclude(candidate, f"Cooldown: play sent within {play.cooldown_days}d")

        recent = await repository.count_recent_for_member(
            session, member.id, now - timedelta(days=self.config.weekly_cap_window_days)
        )
        if recent >= play.max_messages_per_member_per_week:
            return self._exclude(
                candidate,
                f"Weekly cap reached ({recent}/{play.max_messages_per_member_per_week})",
            )

        if not self.registry.has(candidate.channel):
            return self._exclude(candidate, f"No sender registered for {candidate.channel}")

        return GateDecision(allowed=True, hold_until=quiet_hours_hold(play, tz, now))

    def _exclude(self, candidate: Candidate, reason: str) -> GateDecision:
        logger.info(
            "candidate_excluded",
            member_id=candidate.member.id,
            play_id=candidate.play.id,
            channel=candidate.channel.value,
            reason=reason,
        )
        return GateDecision(allowed=False, reason=reason)
