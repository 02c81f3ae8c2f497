"""Seven-day onboarding sequence copy.

Each day maps to one template. Day 4 is the only branch: connected tenants get
the deposit walkthrough, everyone else gets the processor reminder. Days 1, 2
and 5 keep their template key but append a processor P.S. when payments are not
connected yet.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, replace
from typing import Iterator

from bakeriq_api.core.urls import build_app_url

from .rendering import RenderedEmail, html_to_text, inject_email_styles, render, render_cta_button, wrap_email_layout

ONBOARDING_DAYS: tuple[int, ...] = tuple(range(7))
FOOTER_NOTE = "This email was sent by BakerIQ to help you get started."


@dataclass(frozen=True, slots=True)
class OnboardingTemplate:
    key: str
    day: int
    subject: str
    content_html: str
    cta_text: str
    cta_route: str
    ps_html: str | None = None
    ps_text: str | None = None


def _processor_ps(lead: str) -> tuple[str, str]:
    ps_html = (
        '<p style="margin-top: 24px; padding-top: 16px; border-top: 1px solid #e9ecef; color: #666666; '
        f'font-size: 14px;"><strong>P.S.</strong> {lead} '
        '<a href="{{base_url}}/settings" style="color: #E91E63;">Connect Stripe</a></p>'
    )
    return ps_html, f"P.S. {lead} Connect Stripe: {{{{base_url}}}}/settings"


_DAY0 = OnboardingTemplate(
    key="day0_welcome",
    day=0,
    subject="You just upgraded how you get paid.",
    content_html="""
<p>Welcome to BakerIQ. You now have a system that handles pricing, quotes, and payments, so you can stop doing it in DMs.</p>
<p>Here's what BakerIQ replaces:</p>
<ul>
  <li>Pricing conversations in text messages</li>
  <li>Chasing deposits over payment apps or cash</li>
  <li>Sending quotes as screenshots nobody responds to</li>
</ul>
<p>The first thing to do: <strong>connect Stripe</strong> so every quote can collect a deposit. It takes about 5 minutes.</p>
<p>We'll walk you through the rest this week.</p>
""",
    cta_text="Connect Stripe Now",
    cta_route="/settings",
)

_DAY1 = OnboardingTemplate(
    key="day1_pricing",
    day=1,
    subject="Stop quoting in text messages.",
    content_html="""
<p>Every time you price a cake in a DM, you're doing math that a system should handle for you.</p>
<p>The BakerIQ pricing calculator lets you set your prices once, by size, flavor and add-ons. Customers get an instant estimate without you typing a single message.</p>
<p>Today, add your most popular cake to your calculator. It takes about 3 minutes.</p>
<p>Once it's live you'll have a link you can share anywhere customers ask "how much?"</p>
""",
    cta_text="Set Up Your First Product",
    cta_route="/pricing-calculator",
)

_DAY2 = OnboardingTemplate(
    key="day2_quotes",
    day=2,
    subject="A real quote gets a real deposit.",
    content_html="""
<p>Bakers who send structured quotes with clear line items and a deposit request get paid faster.</p>
<p>BakerIQ quotes include:</p>
<ul>
  <li>Itemized pricing your customer can review</li>
  <li>A deposit request they can pay online</li>
  <li>A professional look that builds trust</li>
</ul>
<p>Send your first quote today, even to yourself as a test.</p>
""",
    cta_text="Send Your First Quote",
    cta_route="/quotes",
)

_DAY3 = OnboardingTemplate(
    key="day3_share",
    day=3,
    subject="Your calculator link is your new storefront.",
    content_html="""
<p>Your pricing calculator has a public link. Put it where customers already find you:</p>
<ul>
  <li>Your Instagram bio</li>
  <li>Your Facebook page</li>
  <li>Replies to anyone who asks for a price</li>
</ul>
<p>Every inquiry that comes through it lands in your leads list with everything the customer picked.</p>
""",
    cta_text="Copy Your Calculator Link",
    cta_route="/share",
)

_DAY4_CONNECTED = OnboardingTemplate(
    key="day4_deposit",
    day=4,
    subject="No deposit? No commitment.",
    content_html="""
<p>If a customer has ever ghosted you after hours of design work, you already know: no deposit means no commitment.</p>
<p>Your Stripe account is connected, so you can require a deposit right inside your quote. Set a flat fee or a percentage and the customer pays it when they accept.</p>
<p>Today, create a quote with a deposit requirement for a real or recent order.</p>
""",
    cta_text="Create a Quote with Deposit",
    cta_route="/quotes",
)

_DAY4_NOT_CONNECTED = OnboardingTemplate(
    key="day4_processor_reminder",
    day=4,
    subject="Still haven't connected Stripe?",
    content_html="""
<p>You've seen the pricing calculator, the quote builder and how deposits work, but none of it collects real money until Stripe is connected.</p>
<p>Connecting takes about 5 minutes:</p>
<ul>
  <li>Go to Settings</li>
  <li>Click "Connect Stripe"</li>
  <li>Follow the setup prompts</li>
</ul>
<p>Once connected, deposits collect automatically when customers accept your quotes.</p>
""",
    cta_text="Connect Stripe Now",
    cta_route="/settings",
)

_DAY5 = OnboardingTemplate(
    key="day5_workflow",
    day=5,
    subject="What happens when a baker goes pro.",
    content_html="""
<p>Here's what a typical BakerIQ workflow looks like:</p>
<ol>
  <li>A customer opens your pricing calculator link</li>
  <li>They get an instant estimate and submit their details</li>
  <li>You get a lead with everything they selected</li>
  <li>You send a quote with a deposit request</li>
  <li>The customer accepts and pays</li>
</ol>
<p>If you haven't sent a real quote to a customer yet, today is the day.</p>
""",
    cta_text="Send a Quote to a Customer",
    cta_route="/quotes",
)

_DAY6 = OnboardingTemplate(
    key="day6_habit",
    day=6,
    subject="Make this your new normal.",
    content_html="""
<p>You have a pricing calculator, a quote system and a payment tool. The only thing left is to use them every time.</p>
<p><strong>When someone asks "how much?", send your link instead of typing out prices.</strong></p>
<p>Every inquiry becomes a lead, every lead can become a quote, and every quote can become a paid order.</p>
""",
    cta_text="Open Your Dashboard",
    cta_route="/dashboard",
)

_PS_BY_KEY = {
    "day1_pricing": _processor_ps("Haven't connected Stripe yet? Do that first so you're ready to collect payments."),
    "day2_quotes": _processor_ps("Stripe not connected yet? Your quotes can't collect payment without it."),
    "day5_workflow": _processor_ps("Stripe not connected? That's the missing piece."),
}

_LINEAR = {0: _DAY0, 1: _DAY1, 2: _DAY2, 3: _DAY3, 5: _DAY5, 6: _DAY6}


def get_onboarding_template(day: int, processor_connected: bool) -> OnboardingTemplate | None:
    """Resolve the variant for a day bucket, or ``None`` outside 0-6."""

    if day == 4:
        return _DAY4_CONNECTED if processor_connected else _DAY4_NOT_CONNECTED
    template = _LINEAR.get(day)
    if template is None:
        return None
    if not processor_connected and template.key in _PS_BY_KEY:
        ps_html, ps_text = _PS_BY_KEY[template.key]
        return replace(template, ps_html=ps_html, ps_text=ps_text)
    return template


def template_key_for_day(day: int, processor_connected: bool) -> str:
    template = get_onboarding_template(day, processor_connected)
    return template.key if template is not None else f"day{day}_unknown"


def iter_onboarding_variants() -> Iterator[tuple[int, bool, OnboardingTemplate]]:
    for day in ONBOARDING_DAYS:
        for connected in (True, False):
            template = get_onboarding_template(day, connected)
            if template is not None:
                yield day, connected, template


def render_onboarding_email(template: OnboardingTemplate, business_name: str, base_url: str) -> RenderedEmail:
    tokens = {"base_url": base_url.rstrip("/"), "business_name": business_name}
    content = render(template.content_html, tokens)
    ps_html = render(template.ps_html, tokens)
    cta_url = build_app_url(template.cta_route, base_url)

    inner = "\n".join(
        part
        for part in (
            inject_email_styles(f"<p>Hi {html.escape(business_name)},</p>\n{content}"),
            render_cta_button(template.cta_text, cta_url),
            ps_html,
        )
        if part
    )
    html_body = wrap_email_layout(
        inner,
        footer_note=FOOTER_NOTE,
        preferences_url=build_app_url("/settings", base_url),
    )

    text_parts = [f"Hi {business_name},", html_to_text(content), f"{template.cta_text}: {cta_url}"]
    if template.ps_text:
        text_parts.append(render(template.ps_text, tokens))
    text_parts.append(f"---\n{FOOTER_NOTE}")
    return RenderedEmail(
        subject=template.subject,
        text_body="\n\n".join(text_parts),
        html_body=html_body,
        template_key=template.key,
    )


__all__ = [
    "ONBOARDING_DAYS",
    "OnboardingTemplate",
    "get_onboarding_template",
    "iter_onboarding_variants",
    "render_onboarding_email",
    "template_key_for_day",
]
