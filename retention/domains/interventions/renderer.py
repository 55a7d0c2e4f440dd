"""Play template rendering.

Substitutes ``{{variable}}`` tokens with member and gym values. camelCase
names are accepted as aliases (``{{firstName}}`` == ``{{first_name}}``).
Known variables without a value render as an empty string; unknown
variables and malformed tokens are errors, never shipped to a member.
"""

import re

from retention.domains.scoring.models import MemberAssessment, MemberSnapshot

from .models import (
    TEMPLATE_TOKEN,
    TEMPLATE_VARIABLES,
    PlayConfig,
    RenderedMessage,
    TenantContext,
    normalize_variable,
)

# Braces left once every well-formed token is removed
_LEFTOVER = re.compile(r"\{\{|\}\}")


class TemplateRenderError(ValueError):
    """A template could not be rendered into deliverable content."""


def build_context(
    member: MemberSnapshot,
    assessment: MemberAssessment | None,
    tenant: TenantContext,
) -> dict[str, str]:
    full_name = " ".join(p for p in (member.first_name, member.last_name) if p)
    context = {
        "first_name": member.first_name,
        "last_name": member.last_name,
        "full_name": full_name,
        "gym_name": tenant.name,
        "last_visit_date": "",
        "primary_risk_reason": "",
        "days_since_last_visit": "",
        "risk_score": "",
        "risk_level": "",
        "commitment_score": "",
        "member_stage": "",
    }
    if member.last_visit_date:
        context["last_visit_date"] = member.last_visit_date.isoformat()
    if assessment is not None:
        context["primary_risk_reason"] = assessment.primary_risk_reason
        if assessment.days_since_last_visit is not None:
            context["days_since_last_visit"] = str(assessment.days_since_last_visit)
        context["risk_score"] = str(assessment.churn_risk.score)
        context["risk_level"] = assessment.churn_risk.level.value
        context["commitment_score"] = str(assessment.commitment.score)
        context["member_stage"] = assessment.stage.value
    return context


class MessageRenderer:
    def render_text(self, template: str, context: dict[str, str]) -> str:
        unknown: list[str] = []

        def substitute(match: re.Match) -> str:
            name = normalize_variable(match.group(1))
            if name not in TEMPLATE_VARIABLES:
                unknown.append(match.group(1))
                return match.group(0)
            value = context.get(name)
            return "" if value is None else str(value)

        rendered = TEMPLATE_TOKEN.sub(substitute, template)
        if unknown:
            raise TemplateRenderError(
                f"Unknown template variables: {', '.join(sorted(set(unknown)))}"
            )
        if _LEFTOVER.search(TEMPLATE_TOKEN.sub("", template)):
            raise TemplateRenderError("Malformed template token")
        return rendered

    def render(
        self,
        play: PlayConfig,
        member: MemberSnapshot,
        assessment: MemberAssessment | None,
        tenant: TenantContext,
    ) -> RenderedMessage:
        context = build_context(member, assessment, tenant)
        subject = (
            self.render_text(play.template_subject, context) if play.template_subject else None
        )
        return RenderedMessage(subject=subject, body=self.render_text(play.template_body, context))
