from types import SimpleNamespace

from bakeriq_api.models.lifecycle import RetentionSegment
from bakeriq_api.services.lifecycle.onboarding_templates import (
    get_onboarding_template,
    iter_onboarding_variants,
    render_onboarding_email,
    template_key_for_day,
)
from bakeriq_api.services.lifecycle.rendering import (
    TOKEN_NAMES,
    build_tokens,
    compile_markup,
    html_to_text,
    inject_email_styles,
    markup_to_text,
    prepare_body,
    render,
    sanitize_html,
)
from bakeriq_api.services.lifecycle.templates import (
    DEFAULT_RETENTION_TEMPLATES,
    RetentionTemplateDraft,
    render_retention_email,
)

BASE_URL = "https://bakeriq.app"
RECIPIENT = SimpleNamespace(
    email="owner+cakes@example.com",
    business_name="Crumb & Co",
    first_name="Crumb",
    slug="crumb-co",
)


def test_every_token_is_substituted() -> None:
    template = " | ".join("{{" + name + "}}" for name in TOKEN_NAMES)
    tokens = build_tokens(RECIPIENT, BASE_URL)

    rendered = render(template, tokens)

    assert "{{" not in rendered and "}}" not in rendered
    assert "Crumb" in rendered
    assert "Crumb & Co" in rendered
    assert "https://bakeriq.app/c/crumb-co" in rendered
    assert "https://bakeriq.app/dashboard" in rendered
    assert "https://bakeriq.app/login" in rendered
    assert "https://bakeriq.app/unsubscribe?email=owner%2Bcakes%40example.com" in rendered


def test_unknown_tokens_are_left_verbatim() -> None:
    rendered = render("Hello {{first_name}} {{coupon_code}}", build_tokens(RECIPIENT, BASE_URL))

    assert rendered == "Hello Crumb {{coupon_code}}"


def test_render_tolerates_empty_templates() -> None:
    assert render(None, {"first_name": "Ann"}) == ""
    assert render("", {"first_name": "Ann"}) == ""


def test_compile_markup_handles_headings_bullets_links_and_bold() -> None:
    markup = (
        "# Big news\n\n"
        "Line one\nLine **two**\n\n"
        "- first item\n- [Open dashboard](https://bakeriq.app/dashboard)\n\n"
        "[bad](javascript:alert(1))"
    )

    compiled = compile_markup(markup)

    assert "<h1>Big news</h1>" in compiled
    assert "<p>Line one<br>Line <strong>two</strong></p>" in compiled
    assert "<ul><li>first item</li>" in compiled
    assert '<a href="https://bakeriq.app/dashboard">Open dashboard</a>' in compiled
    assert "javascript" not in compiled


def test_compile_markup_escapes_raw_angle_brackets() -> None:
    assert compile_markup("2 < 3 & 4 > 1") == "<p>2 &lt; 3 &amp; 4 &gt; 1</p>"


def test_markup_to_text_keeps_link_targets() -> None:
    text = markup_to_text("## Title\n\n* [Pricing](https://bakeriq.app/pricing) is **live**")

    assert text == "Title\n\n- Pricing <https://bakeriq.app/pricing> is live"


def test_sanitize_html_strips_disallowed_markup_but_keeps_text() -> None:
    dirty = (
        '<div onclick="steal()"><p style="color: red">Hello <b>there</b></p>'
        "<script>alert(1)</script>"
        '<a href="javascript:alert(1)">click</a>'
        '<a href="https://bakeriq.app/login" target="_blank">login</a>'
        '<img src="x" onerror="boom()"><span style="background: url(evil)">kept</span></div>'
    )

    clean = sanitize_html(dirty)

    assert "onclick" not in clean
    assert "<script" not in clean and "alert(1)" not in clean
    assert "javascript:" not in clean
    assert "<img" not in clean
    assert "target=" not in clean
    assert "url(" not in clean
    assert '<p style="color: red">Hello <b>there</b></p>' in clean
    assert '<a href="https://bakeriq.app/login">login</a>' in clean
    assert "click" in clean and "kept" in clean


def test_sanitize_html_closes_unbalanced_tags() -> None:
    assert sanitize_html("<p>open <strong>bold") == "<p>open <strong>bold</strong></p>"


def test_inject_email_styles_keeps_operator_styles_last() -> None:
    styled = inject_email_styles('<p style="color: red">Hi</p><h2>Head</h2>')

    assert 'style="' in styled
    paragraph_style = styled.split('style="', 1)[1].split('"', 1)[0]
    assert paragraph_style.endswith("color: red")
    assert "<h2 style=" in styled


def test_html_to_text_flattens_lists_and_links() -> None:
    text = html_to_text(
        "<p>Hi &amp; welcome</p><ul><li>One</li><li>Two</li></ul>"
        '<p><a href="https://bakeriq.app/share">Share it</a></p>'
    )

    assert "Hi & welcome" in text
    assert "- One\n- Two" in text
    assert "Share it <https://bakeriq.app/share>" in text


def test_prepare_body_detects_html_versus_markup() -> None:
    html_body, html_text = prepare_body("<p>Hello <strong>baker</strong></p>")
    markup_body, markup_text = prepare_body("Hello **baker**")

    assert html_text == "Hello baker"
    assert markup_text == "Hello baker"
    assert ">baker</strong>" in html_body
    assert ">baker</strong>" in markup_body


def test_onboarding_day_four_branches_on_processor_connection() -> None:
    connected = get_onboarding_template(4, True)
    not_connected = get_onboarding_template(4, False)

    assert connected is not None and not_connected is not None
    assert connected.key == "day4_deposit"
    assert not_connected.key == "day4_processor_reminder"
    assert connected.subject != not_connected.subject


def test_onboarding_ps_only_for_unconnected_tenants() -> None:
    for day in (1, 2, 5):
        assert get_onboarding_template(day, True).ps_html is None
        assert get_onboarding_template(day, False).ps_html


def test_onboarding_outside_sequence_has_no_template() -> None:
    assert get_onboarding_template(7, False) is None
    assert get_onboarding_template(-1, True) is None
    assert template_key_for_day(9, True) == "day9_unknown"


def test_onboarding_variants_cover_every_day() -> None:
    variants = list(iter_onboarding_variants())

    assert len(variants) == 14
    assert {day for day, _, _ in variants} == set(range(7))


def test_render_onboarding_email_builds_html_and_text() -> None:
    template = get_onboarding_template(1, False)

    email = render_onboarding_email(template, "Crumb & Co", BASE_URL)

    assert email.subject == template.subject
    assert email.template_key == "day1_pricing"
    assert "Hi Crumb &amp; Co," in email.html_body
    assert "https://bakeriq.app/pricing-calculator" in email.html_body
    assert "https://bakeriq.app/settings" in email.html_body
    assert email.text_body.startswith("Hi Crumb & Co,")
    assert f"{template.cta_text}: https://bakeriq.app/pricing-calculator" in email.text_body
    assert "{{" not in email.html_body and "{{" not in email.text_body


def test_render_retention_email_appends_cta_and_preheader() -> None:
    template = RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="Check in",
        subject="{{first_name}}, quick check-in",
        preheader="We saved your spot, {{business_name}}",
        body_html="Hi {{first_name}},\n\nYour [dashboard]({{dashboard_url}}) misses you.",
        cta_text="Log in",
        cta_route="/login",
    )

    email = render_retention_email(template, build_tokens(RECIPIENT, BASE_URL), base_url=BASE_URL)

    assert email.subject == "Crumb, quick check-in"
    assert "We saved your spot, Crumb &amp; Co" in email.html_body
    assert 'href="https://bakeriq.app/dashboard"' in email.html_body
    assert "https://bakeriq.app/login" in email.html_body
    assert email.text_body.endswith("Log in: https://bakeriq.app/login")
    assert "dashboard <https://bakeriq.app/dashboard>" in email.text_body


def test_render_retention_email_prefers_explicit_text_body() -> None:
    template = RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="Plain",
        subject="Hello",
        body_html="<p>Rich copy</p>",
        body_text="Plain copy for {{first_name}}. Log in: {{base_url}}/login",
        cta_text="Log in",
        cta_route="/login",
    )

    email = render_retention_email(template, build_tokens(RECIPIENT, BASE_URL), base_url=BASE_URL)

    assert email.text_body == "Plain copy for Crumb. Log in: https://bakeriq.app/login"


def test_tag_in_business_name_does_not_switch_markup_body_to_html() -> None:
    recipient = SimpleNamespace(
        email="cakes@example.com", business_name="<b>Cakes</b> Co", first_name="Cakes", slug="cakes"
    )
    template = RetentionTemplateDraft(
        segment=RetentionSegment.CONFIGURED_NOT_SHARED,
        name="Share",
        subject="Share your link",
        body_html="Hi {{business_name}},\n\n- Copy your link\n- Post it on Instagram",
        cta_text="Open Quick Quote",
        cta_route="/quick-quote",
    )

    email = render_retention_email(template, build_tokens(recipient, BASE_URL), base_url=BASE_URL)

    assert ">Hi &lt;b&gt;Cakes&lt;/b&gt; Co,</p>" in email.html_body
    assert "<ul style=" in email.html_body
    assert "<li style=" in email.html_body
    assert "<b>Cakes</b>" not in email.html_body


def test_token_values_stay_literal_text_in_html_body() -> None:
    recipient = SimpleNamespace(
        email="owner@example.com",
        business_name='<a href="https://evil.example">Claim prize</a>',
        first_name="Owner",
        slug="owner",
    )
    template = RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="Welcome back",
        subject="Welcome back",
        body_html="<p>Welcome back, {{business_name}}.</p>",
        cta_text="Log in",
        cta_route="/login",
    )

    email = render_retention_email(template, build_tokens(recipient, BASE_URL), base_url=BASE_URL)

    assert 'href="https://evil.example"' not in email.html_body
    assert "&lt;a href=" in email.html_body
    assert "Claim prize" in email.text_body


def test_default_retention_templates_cover_every_segment() -> None:
    segments = {draft.segment for draft in DEFAULT_RETENTION_TEMPLATES}

    assert segments == set(RetentionSegment)
