"""Operator-editable retention templates: storage, defaults and rendering."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.urls import build_app_url
from bakeriq_api.models.lifecycle import RetentionEmailTemplate, RetentionSegment

from .errors import TemplateNotFoundError
from .rendering import (
    PersonalizationTokens,
    RenderedEmail,
    render,
    render_body,
    render_cta_button,
    wrap_email_layout,
)

FOOTER_NOTE = "You're receiving this because you have a BakerIQ account."
EDITABLE_FIELDS = frozenset(
    {"name", "subject", "preheader", "body_html", "body_text", "cta_text", "cta_route", "is_active", "priority"}
)
_REQUIRED_FIELDS = frozenset({"name", "subject", "body_html", "body_text", "is_active", "priority"})


class RetentionTemplateLike(Protocol):
    subject: Any
    preheader: Any
    body_html: Any
    body_text: Any
    cta_text: Any
    cta_route: Any


@dataclass(frozen=True)
class RetentionTemplateDraft:
    segment: RetentionSegment
    name: str
    subject: str
    body_html: str
    cta_text: str
    cta_route: str
    priority: int = 0
    preheader: str | None = None
    body_text: str = ""
    is_active: bool = True


DEFAULT_RETENTION_TEMPLATES: tuple[RetentionTemplateDraft, ...] = (
    RetentionTemplateDraft(
        segment=RetentionSegment.NEW_BUT_INACTIVE,
        name="Survey Invitation - Free Pro Month",
        subject="Quick question + free Pro upgrade",
        preheader="Two minutes of feedback, one month of Pro",
        body_html=(
            "Hi {{first_name}},\n\n"
            "We noticed you signed up for BakerIQ but haven't had a chance to set things up yet. "
            "We'd love to understand what's getting in the way.\n\n"
            "Answer 4 quick questions and we'll give you a free month of Pro, no strings attached.\n\n"
            "Your feedback helps us make BakerIQ better for bakers like you."
        ),
        cta_text="Take the Survey",
        cta_route="/feedback",
        priority=2,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.NEW_BUT_INACTIVE,
        name="Get Started - Share Your Link",
        subject="Your quote link is ready to share",
        preheader="Start getting customer inquiries today",
        body_html=(
            "<p>Hi {{first_name}},</p>"
            "<p>Quick reminder: you have a calculator link ready to share with customers.</p>"
            "<p>Customers get instant estimates and send their details straight to you. "
            'Your link: <a href="{{quick_quote_url}}">{{quick_quote_url}}</a></p>'
            "<p>Try pasting it in your Instagram bio or sharing it when someone asks about pricing.</p>"
        ),
        cta_text="Open Your Share Settings",
        cta_route="/settings",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.NEW_BUT_INACTIVE,
        name="Set Up Your Pricing",
        subject="5 mins to set your cake prices",
        preheader="Customize prices for your business",
        body_html=(
            "Hi {{first_name}},\n\n"
            "The default calculator prices might not match your business. You can customize them in about 5 minutes.\n\n"
            "- Set base prices for your cake sizes\n"
            "- Add your specialty flavors\n"
            "- Adjust decoration costs"
        ),
        cta_text="Set Your Prices",
        cta_route="/pricing",
        priority=0,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.CONFIGURED_NOT_SHARED,
        name="Share Your Calculator Link",
        subject="Ready to get leads? Share your link",
        preheader="Your calculator is set up and ready",
        body_html=(
            "Hi {{first_name}},\n\n"
            "Your calculator is set up with your custom pricing. Now put it to work. Share your link on:\n\n"
            "- Your Instagram bio or stories\n"
            "- Your Facebook business page\n"
            "- Replies when customers ask about pricing\n\n"
            "Your calculator link: [{{quick_quote_url}}]({{quick_quote_url}})"
        ),
        cta_text="Copy Your Link",
        cta_route="/share",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.LEADS_NO_QUOTES,
        name="Turn Leads Into Quotes",
        subject="You have leads waiting for quotes",
        preheader="Convert inquiries into bookings",
        body_html=(
            "Hi {{first_name}},\n\n"
            "You've got customer inquiries coming in. Now's the time to send them a professional quote.\n\n"
            'Open any lead, hit **Create Quote** and customize the details. Send it with one click.'
        ),
        cta_text="View Your Leads",
        cta_route="/leads",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.QUOTES_NO_ORDERS,
        name="Track Accepted Quotes",
        subject="Keep your orders organized",
        preheader="Use your calendar to stay on top of events",
        body_html=(
            "<p>Hi {{first_name}},</p>"
            "<p>You've been sending quotes. When customers accept, everything shows up in your calendar.</p>"
            "<p>See upcoming events, mark orders as completed and keep it all in one place.</p>"
        ),
        cta_text="View Your Calendar",
        cta_route="/calendar",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.ACTIVE_POWER_USER,
        name="Power User Tips",
        subject="Tips from the BakerIQ team",
        preheader="Get more from your account",
        body_html=(
            "## You're on a roll, {{first_name}}\n\n"
            "A few things busy bakers use to save even more time:\n\n"
            "- Feature your best sellers on your calculator page\n"
            "- Require deposits on every quote\n"
            "- Refer a baker friend and earn rewards"
        ),
        cta_text="Go to Dashboard",
        cta_route="/dashboard",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="We Miss You",
        subject="Your customers are looking for you",
        preheader="Pick up where you left off",
        body_html=(
            "<p>Hi {{first_name}},</p>"
            "<p>It's been a little while. Your calculator link is still live and customers can still find you.</p>"
            '<p><a href="{{login_url}}">Log back in</a> to check for new inquiries.</p>'
        ),
        cta_text="Log Back In",
        cta_route="/login",
        priority=1,
    ),
    RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="Quick Check-In",
        subject="Need help with anything?",
        preheader="We're here if you get stuck",
        body_html=(
            "Hi {{first_name}},\n\n"
            "You can reach out through our support chat anytime. "
            "We want to make sure you get the most out of your account."
        ),
        cta_text="Get Support",
        cta_route="/help",
        priority=0,
    ),
)


def render_retention_email(
    template: RetentionTemplateLike,
    tokens: PersonalizationTokens,
    *,
    base_url: str,
) -> RenderedEmail:
    """Render a retention template into the shared email chrome."""

    subject = render(template.subject, tokens)
    inner_html, derived_text = render_body(template.body_html, tokens)
    text_source = template.body_text or ""
    text_body = render(text_source, tokens) if text_source.strip() else derived_text

    if template.cta_text and template.cta_route:
        cta_url = build_app_url(template.cta_route, base_url)
        inner_html = f"{inner_html}\n{render_cta_button(template.cta_text, cta_url)}"
        if cta_url not in text_body:
            text_body = f"{text_body}\n\n{template.cta_text}: {cta_url}"

    html_body = wrap_email_layout(
        inner_html,
        footer_note=FOOTER_NOTE,
        preferences_url=build_app_url("/settings", base_url),
        preheader=render(template.preheader, tokens) or None,
    )
    return RenderedEmail(subject=subject, text_body=text_body.strip(), html_body=html_body)


class RetentionTemplateStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_templates(self) -> List[RetentionEmailTemplate]:
        result = await self._session.execute(
            select(RetentionEmailTemplate).order_by(
                RetentionEmailTemplate.segment.desc(),
                RetentionEmailTemplate.priority.desc(),
            )
        )
        return list(result.scalars().all())

    async def get_template(self, template_id: UUID) -> RetentionEmailTemplate:
        template = await self._session.get(RetentionEmailTemplate, template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    async def active_for_segment(self, segment: RetentionSegment) -> RetentionEmailTemplate | None:
        """Highest-priority active template for the segment, if any."""

        result = await self._session.execute(
            select(RetentionEmailTemplate)
            .where(RetentionEmailTemplate.segment == segment, RetentionEmailTemplate.is_active.is_(True))
            .order_by(RetentionEmailTemplate.priority.desc(), RetentionEmailTemplate.created_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def update_template(self, template_id: UUID, changes: Mapping[str, Any]) -> RetentionEmailTemplate:
        template = await self.get_template(template_id)
        applied: Dict[str, Any] = {}
        for field_name, value in changes.items():
            if field_name not in EDITABLE_FIELDS:
                continue
            if value is None and field_name in _REQUIRED_FIELDS:
                continue
            setattr(template, field_name, value)
            applied[field_name] = value
        await self._session.flush()
        logger.info("Retention template updated", template_id=str(template_id), fields=sorted(applied))
        return template


async def seed_retention_templates(
    session: AsyncSession,
    templates: Iterable[RetentionTemplateDraft] = DEFAULT_RETENTION_TEMPLATES,
) -> int:
    """Insert the default copy when the table is empty; returns rows created."""

    existing = await session.execute(select(func.count(RetentionEmailTemplate.id)))
    count = int(existing.scalar_one() or 0)
    if count:
        logger.info("Retention templates already present, skipping seed", existing=count)
        return 0

    created = 0
    for draft in templates:
        session.add(RetentionEmailTemplate(**asdict(draft)))
        created += 1
    await session.flush()
    logger.info("Seeded retention templates", created=created)
    return created


__all__ = [
    "DEFAULT_RETENTION_TEMPLATES",
    "EDITABLE_FIELDS",
    "RetentionTemplateDraft",
    "RetentionTemplateStore",
    "render_retention_email",
    "seed_retention_templates",
]
