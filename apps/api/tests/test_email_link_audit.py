import pytest

from bakeriq_api.models.lifecycle import RetentionSegment
from bakeriq_api.services.lifecycle.link_audit import (
    audit_rendered,
    check_url,
    extract_urls,
    format_report,
    is_known_path,
    run_link_audit,
)
from bakeriq_api.services.lifecycle.onboarding_templates import get_onboarding_template, render_onboarding_email
from bakeriq_api.services.lifecycle.templates import RetentionTemplateDraft

BASE_URL = "https://bakeriq.app"


def test_shipped_emails_only_link_to_canonical_routes() -> None:
    report = run_link_audit(BASE_URL)

    assert report.passed, [check.url for check in report.bad_urls]
    assert report.total_urls > 0
    names = [template.name for template in report.templates]
    assert "onboarding/day4_processor_reminder/not_connected" in names
    assert "onboarding/day4_deposit/connected" in names
    assert any(name.startswith("retention/at_risk/") for name in names)
    assert "footer/baker_email" in names


def test_day_four_reminder_links_resolve_to_known_routes() -> None:
    report = run_link_audit(BASE_URL)
    reminder = next(t for t in report.templates if t.name == "onboarding/day4_processor_reminder/not_connected")

    paths = {check.path for check in reminder.urls}
    assert "/settings" in paths
    assert all(check.host == "bakeriq.app" for check in reminder.urls)


def test_trailing_slash_base_url_still_passes() -> None:
    assert run_link_audit(BASE_URL + "/").passed


def test_off_domain_and_unknown_routes_are_reported() -> None:
    broken = RetentionTemplateDraft(
        segment=RetentionSegment.AT_RISK,
        name="Broken Links",
        subject="Come back",
        body_html='<p>See <a href="http://localhost:3000/dashboard">your dashboard</a>.</p>',
        cta_text="Open",
        cta_route="/nowhere",
    )

    report = run_link_audit(BASE_URL, retention_templates=[broken])

    assert not report.passed
    bad = {check.url: check for check in report.bad_urls}
    assert bad["http://localhost:3000/dashboard"].host_ok is False
    assert bad["http://localhost:3000/dashboard"].path_ok is True
    assert bad[f"{BASE_URL}/nowhere"].path_ok is False
    assert "[FAIL] retention/at_risk/broken_links" in format_report(report)


@pytest.mark.parametrize(
    ("url", "host_ok"),
    [
        ("https://bakeriq.app/quotes", True),
        ("https://BakerIQ.app/quotes", True),
        ("https://bakeriq.replit.dev/quotes", False),
        ("http://127.0.0.1/quotes", False),
        ("https://example.com/quotes", False),
    ],
)
def test_check_url_host(url: str, host_ok: bool) -> None:
    assert check_url(url, "bakeriq.app").host_ok is host_ok


@pytest.mark.parametrize(
    ("path", "known"),
    [
        ("/", True),
        ("", True),
        ("/settings", True),
        ("/settings/", True),
        ("/settings/billing", True),
        ("/settingsx", False),
        ("/pricing-calculator", True),
        ("/c/test-baker", True),
        ("/c", False),
        ("/email-preferences/token", True),
        ("/unknown", False),
    ],
)
def test_is_known_path(path: str, known: bool) -> None:
    assert is_known_path(path) is known


def test_extract_urls_trims_punctuation_and_decodes_entities() -> None:
    text = (
        "Visit https://bakeriq.app/quotes. Or https://bakeriq.app/leads?a=1&amp;b=2, "
        'and <a href="https://bakeriq.app/quotes">again</a> (https://bakeriq.app/share)'
    )

    assert extract_urls(text) == [
        "https://bakeriq.app/quotes",
        "https://bakeriq.app/leads?a=1&b=2",
        "https://bakeriq.app/share",
    ]


def test_template_without_links_passes_and_is_flagged_in_report() -> None:
    audit = audit_rendered("plain", "<p>No links here</p>", base_url=BASE_URL)
    assert audit.passed
    assert audit.urls == []


def test_format_report_summarises_pass() -> None:
    output = format_report(run_link_audit(BASE_URL))

    assert "Canonical URL: https://bakeriq.app" in output
    assert "[PASS] onboarding/day0_welcome/connected" in output
    assert "[FAIL]" not in output


def test_day_four_variants_differ_and_connected_cta_is_canonical() -> None:
    connected = get_onboarding_template(4, True)
    unconnected = get_onboarding_template(4, False)
    email = render_onboarding_email(connected, "Test Bakery", BASE_URL)

    audit = audit_rendered("day4", email.html_body, base_url=BASE_URL)

    assert connected.subject != unconnected.subject
    assert audit.passed
    assert f"{BASE_URL}{connected.cta_route}" in [check.url for check in audit.urls]
