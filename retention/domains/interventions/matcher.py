"""Play matching: which members should a play reach, and on which channel."""

from collections.abc import Iterable, Sequence

from retention.db.models import MemberDB
from retention.domains.scoring.models import MemberAssessment, MemberSnapshot, MembershipStatus

from .models import Candidate, Channel, PlayConfig, TriggerType


def can_receive(member: MemberSnapshot | MemberDB, channel: Channel) -> bool:
    """Whether the member has a usable contact and consent for the channel."""
    if channel == Channel.EMAIL:
        return bool(member.email) and member.consent_email
    if channel == Channel.SMS:
        return bool(member.phone) and member.consent_sms
    if channel == Channel.WHATSAPP:
        return bool(member.phone) and member.consent_whatsapp
    return False


def contact_address(member: MemberSnapshot | MemberDB, channel: Channel) -> str | None:
    if channel == Channel.EMAIL:
        return member.email
    return member.phone


class PlayMatcher:
    """Proposes (member, play) candidates for active daily-batch plays."""

    def __init__(self, channel_priority: Sequence[Channel]) -> None:
        self.channel_priority = tuple(channel_priority)

    def select_channel(self, member: MemberSnapshot, play: PlayConfig) -> Channel | None:
        for channel in self.channel_priority:
            if channel in play.channels and can_receive(member, channel):
                return channel
        return None

    def match(
        self,
        member: MemberSnapshot,
        assessment: MemberAssessment,
        plays: Iterable[PlayConfig],
    ) -> list[Candidate]:
        if member.status != MembershipStatus.ACTIVE:
            return []

        candidates: list[Candidate] = []
        for play in plays:
            if not play.is_active or play.trigger_type != TriggerType.DAILY_BATCH:
                continue
            if assessment.churn_risk.score < play.min_risk_score:
                continue
            channel = self.select_channel(member, play)
            if channel is None:
                continue
            candidates.append(
                Candidate(
                    member=member,
                    play=play,
                    channel=channel,
                    assessment=assessment,
                    reason=_match_reason(assessment),
                )
            )
        return candidates


def _match_reason(assessment: MemberAssessment) -> str:
    risk = assessment.churn_risk
    summary = f"Churn risk {risk.score} ({risk.level.value})"
    if assessment.primary_risk_reason:
        return f"{summary}: {assessment.primary_risk_reason}"
    return summary
